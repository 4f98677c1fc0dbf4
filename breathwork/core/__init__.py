"""Configuration, logging, errors and the technique catalogue."""
