"""Backend-agnostic filter normalization and relational query building."""
