"""Bidirectional sync between the drawing surface and the JSON text buffer."""
