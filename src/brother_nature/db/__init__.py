"""SQLite persistence for users, sessions, wallet challenges and reward requests."""
