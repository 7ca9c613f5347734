"""Repositories for stocks and daily prices."""

from .persister import Persister, SqlPersister


__all__ = [
    "Persister",
    "SqlPersister",
]
