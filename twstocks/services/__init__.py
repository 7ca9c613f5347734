"""Ingestion services."""
