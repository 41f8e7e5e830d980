"""Job board ingestion, match scoring and one-at-a-time application campaigns."""
