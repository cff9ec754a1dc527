"""Reverse-image search backends."""
