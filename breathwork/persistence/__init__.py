"""SQLite persistence for user preferences."""
