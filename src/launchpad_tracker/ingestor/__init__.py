"""Event ingestion - log decoding, transaction grouping, filter and block subscriptions."""
