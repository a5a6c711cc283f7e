"""Async per-entity queries. Every function takes the caller's AsyncSession
first and leaves commit/rollback to the caller."""
