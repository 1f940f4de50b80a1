"""Infrastructure adapters (chain access, database)."""
