"""Builders for provider resource configurations."""
