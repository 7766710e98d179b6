"""Retrieval and streaming generation."""
