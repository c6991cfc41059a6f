"""
Relational store for Warrant, built on SQLAlchemy.

- TransactionManager: one commit/rollback boundary per operation
- PolicyStore: tenant and shared policies
- DirectoryStore: organizations, teams, users and membership
"""

from __future__ import annotations

from warrant.store.directory import DirectoryStore
from warrant.store.policies import PolicyStore
from warrant.store.transaction import (
    Job,
    TransactionManager,
    create_store_engine,
    is_unique_violation,
)

__all__ = [
    "DirectoryStore",
    "Job",
    "PolicyStore",
    "TransactionManager",
    "create_store_engine",
    "is_unique_violation",
]
