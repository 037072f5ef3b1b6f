"""Logging and event observation."""
