"""Core infrastructure: configuration, logging and persistence."""
