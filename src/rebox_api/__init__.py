"""ReBox rewards API service."""
