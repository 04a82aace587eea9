"""Price data ingestion."""
