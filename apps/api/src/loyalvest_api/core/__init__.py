"""Core configuration, logging and time utilities."""
