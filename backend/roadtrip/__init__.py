"""Road trip route generation service."""
