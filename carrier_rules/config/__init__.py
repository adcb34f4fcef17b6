"""Configuration, logging and message constants."""
