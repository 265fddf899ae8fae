"""HTTP surface of the cycling engine."""
