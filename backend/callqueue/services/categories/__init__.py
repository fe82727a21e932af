"""Service category administration."""
