"""Campaign and session scheduling."""
