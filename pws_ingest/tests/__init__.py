"""Unit tests for the pws_ingest package."""
