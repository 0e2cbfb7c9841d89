"""Configuration models, parsing, and runtime settings."""
