"""Search record indexing for finished documentation builds."""
