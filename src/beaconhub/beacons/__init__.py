"""Beacon directory."""
