"""HTTP surface — ingestion and status routes."""
