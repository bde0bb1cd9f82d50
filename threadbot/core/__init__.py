"""Core infrastructure — config, errors, providers."""
