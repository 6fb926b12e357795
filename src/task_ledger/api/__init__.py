"""HTTP surface for workers."""
