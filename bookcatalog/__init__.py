"""Book catalog — CRUD service over a relational store with soft delete."""

__version__ = "1.0.0"
