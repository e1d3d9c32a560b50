"""HTTP surface of the loyalty engine."""
