"""Indexer services: scan, classify, dispatch, project."""
