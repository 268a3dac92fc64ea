"""Bundled schema files."""
