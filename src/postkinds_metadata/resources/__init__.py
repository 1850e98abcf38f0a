"""Packaged data files (provider registry)."""
