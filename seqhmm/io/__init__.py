"""Input file readers."""
