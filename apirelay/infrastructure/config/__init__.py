"""Configuration loading for apirelay."""
