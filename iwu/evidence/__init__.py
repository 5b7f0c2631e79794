"""Evidence bundle generation."""
