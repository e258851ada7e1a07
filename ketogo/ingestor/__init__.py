"""RSS ingestion: feed fetching, entry normalization and the daily run."""
