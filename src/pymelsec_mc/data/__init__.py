"""Packaged device tables, one JSON file per table name."""
