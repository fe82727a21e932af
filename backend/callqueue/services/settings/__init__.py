"""Key/value system settings."""
