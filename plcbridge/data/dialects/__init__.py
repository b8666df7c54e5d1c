"""Vendor dialect descriptors (YAML)."""
