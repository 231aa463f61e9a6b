"""Ingest pipeline stages and the operator command facade."""
