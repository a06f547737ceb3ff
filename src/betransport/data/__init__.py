"""Bundled static data files."""
