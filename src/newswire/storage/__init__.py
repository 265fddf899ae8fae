"""SQLite persistence for articles and cycle state."""
