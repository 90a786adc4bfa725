"""Cars-G backend API."""
