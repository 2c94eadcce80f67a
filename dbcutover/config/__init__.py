"""Bundled configuration data and retry policy constants."""
