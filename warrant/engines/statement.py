"""
Statement engine for Warrant.

This module provides the StatementEngine, which combines the statements of
an effective policy set into a single verdict: an explicit Deny always
wins, otherwise any matching Allow grants access, otherwise access is
denied by default.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from typing import Any

from warrant.engines.base import BaseDecisionEngine, Decision, StatementMatch
from warrant.matching import matches_any
from warrant.types import CompiledPolicy, Effect, Statement

logger = logging.getLogger(__name__)


def statement_matches(statement: Statement, action: str, resource: str) -> bool:
    """
    Check whether a compiled statement applies to (action, resource).

    At least one action pattern must match ``action`` and at least one
    resource pattern must match ``resource``.
    """
    return matches_any(statement.actions, action) and matches_any(statement.resources, resource)


def _iter_statements(
    policies: Sequence[CompiledPolicy],
) -> Iterator[tuple[CompiledPolicy, Statement]]:
    for policy in policies:
        for statement in policy.statements:
            yield policy, statement


class StatementEngine(BaseDecisionEngine):
    """
    Deny-overrides-allow engine over compiled policy statements.

    The engine is stateless: every call receives the full effective
    policy set, so a single instance can be shared by any number of
    concurrent requests.

    Example:
        >>> engine = StatementEngine()
        >>> decision = engine.decide(policies, "read", "db:sales")
        >>> decision.allowed
        True
    """

    name = "statement"

    def decide(
        self,
        policies: Sequence[CompiledPolicy],
        action: str,
        resource: str,
    ) -> Decision:
        """
        Decide one (action, resource) pair.

        The evaluation process:
        1. Walk every statement of every policy in order
        2. Stop at the first matching Deny statement
        3. Otherwise allow if some Allow statement matched
        4. Otherwise deny by default

        Args:
            policies: The compiled effective policy set.
            action: The action being attempted.
            resource: The resource being accessed.

        Returns:
            Decision with the verdict and the deciding statement.
        """
        allow: StatementMatch | None = None
        evaluated = 0

        for policy, statement in _iter_statements(policies):
            evaluated += 1
            if not statement_matches(statement, action, resource):
                continue

            if statement.effect is Effect.DENY:
                logger.debug(
                    f"Denied by policy {policy.policy_id}: action={action}, resource={resource}"
                )
                return Decision(
                    effect=Effect.DENY,
                    reason=f"Denied by policy '{policy.name}'",
                    matched=StatementMatch(policy, statement),
                    statements_evaluated=evaluated,
                )

            if allow is None:
                allow = StatementMatch(policy, statement)

        if allow is not None:
            return Decision(
                effect=Effect.ALLOW,
                reason=f"Allowed by policy '{allow.policy.name}'",
                matched=allow,
                statements_evaluated=evaluated,
            )

        return Decision.default_deny(statements_evaluated=evaluated)

    def candidate_actions(
        self,
        policies: Sequence[CompiledPolicy],
        resource: str,
    ) -> list[str]:
        """
        Collect the actions of every Allow statement whose resource
        patterns match ``resource``.

        Candidates are returned without duplicates, in order of first
        appearance. They still have to be checked with ``decide``.
        """
        candidates: list[str] = []
        seen: set[str] = set()

        for _, statement in _iter_statements(policies):
            if statement.effect is not Effect.ALLOW:
                continue
            if not matches_any(statement.resources, resource):
                continue
            for action in statement.actions:
                if action not in seen:
                    seen.add(action)
                    candidates.append(action)

        return candidates

    def allowed_actions(
        self,
        policies: Sequence[CompiledPolicy],
        resource: str,
    ) -> list[str]:
        """
        List the actions ``policies`` allow on ``resource``.

        Each candidate action is re-evaluated with ``decide``, so a
        matching Deny removes it. The cost is one full evaluation per
        candidate action; callers should resolve the policy set once and
        reuse it across resources.
        """
        return [
            action
            for action in self.candidate_actions(policies, resource)
            if self.decide(policies, action, resource).allowed
        ]

    def explain(
        self,
        policies: Sequence[CompiledPolicy],
        action: str,
        resource: str,
    ) -> dict[str, Any]:
        """
        Explain a decision.

        Provides the verdict together with every Allow and Deny statement
        that matched, useful for debugging and auditing.

        Args:
            policies: The compiled effective policy set.
            action: The action being attempted.
            resource: The resource being accessed.

        Returns:
            Dictionary containing explanation details.
        """
        decision = self.decide(policies, action, resource)
        allows: list[dict[str, Any]] = []
        denies: list[dict[str, Any]] = []

        for policy, statement in _iter_statements(policies):
            if statement_matches(statement, action, resource):
                entry = StatementMatch(policy, statement).to_dict()
                if statement.effect is Effect.DENY:
                    denies.append(entry)
                else:
                    allows.append(entry)

        return {
            "decision": decision.effect.value,
            "reason": decision.reason,
            "request": {"action": action, "resource": resource},
            "matched_allow": allows,
            "matched_deny": denies,
            "policies_evaluated": [p.name for p in policies],
        }
