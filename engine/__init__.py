"""Playlist generation engine: pool building, selection strategies, validation."""
