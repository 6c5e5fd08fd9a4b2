"""Ingestion: emotion normalisation, field validation, and cross-source correlation."""
