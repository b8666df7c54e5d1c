"""Packaged data files for plcbridge."""
