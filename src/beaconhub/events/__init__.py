"""In-process notification fan-out."""
