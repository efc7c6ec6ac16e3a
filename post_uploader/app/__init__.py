"""Application entry points and local persistence."""
