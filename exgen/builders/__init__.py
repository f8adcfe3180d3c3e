"""Per-shape builders that lower IR expressions to target nodes."""
