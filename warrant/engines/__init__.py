"""
Decision engines for Warrant.

- StatementEngine: deny-overrides-allow evaluation of compiled policy
  statements with full-string wildcard matching.

Quick Start:
    >>> from warrant.engines import StatementEngine
    >>>
    >>> engine = StatementEngine()
    >>> engine.decide(policies, "read", "db:sales").allowed
"""

from __future__ import annotations

from warrant.engines.base import (
    BaseDecisionEngine,
    Decision,
    DecisionEngine,
    StatementMatch,
)
from warrant.engines.statement import StatementEngine, statement_matches

__all__ = [
    "BaseDecisionEngine",
    "Decision",
    "DecisionEngine",
    "StatementEngine",
    "StatementMatch",
    "statement_matches",
]
