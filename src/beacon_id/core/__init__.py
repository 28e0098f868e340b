"""Core configuration, types, errors and logging."""
