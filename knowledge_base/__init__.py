"""Knowledge base ingestion and semantic retrieval service."""
