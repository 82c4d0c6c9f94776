"""Shared helpers (logging, settings) for KITT-style services."""
