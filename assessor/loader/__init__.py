"""Fetching, validation and caching of check units."""
