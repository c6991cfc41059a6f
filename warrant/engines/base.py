"""
Decision engine base classes and protocols for Warrant.

This module defines the DecisionEngine protocol the authorizer talks to,
so that the statement evaluator can be swapped for another implementation
with the same combination semantics.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from warrant.types import CompiledPolicy, Effect, Statement


@dataclass(frozen=True)
class StatementMatch:
    """A statement that matched a request, with the policy it came from."""
    policy: CompiledPolicy
    statement: Statement

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy_id": self.policy.policy_id,
            "policy_name": self.policy.name,
            "instance": self.policy.instance_id,
            "source": self.policy.source.to_dict() if self.policy.source else None,
            "statement": self.statement.to_dict(),
        }


@dataclass(frozen=True)
class Decision:
    """
    Outcome of evaluating one (action, resource) pair.

    Attributes:
        effect: Allow or Deny.
        reason: Human-readable explanation of the decision.
        matched: The statement that decided the outcome, or None when no
            statement matched and the default deny applied.
        statements_evaluated: Number of statements looked at.
    """
    effect: Effect
    reason: str
    matched: StatementMatch | None = None
    statements_evaluated: int = 0

    @property
    def allowed(self) -> bool:
        return self.effect is Effect.ALLOW

    @classmethod
    def default_deny(cls, statements_evaluated: int = 0) -> Decision:
        return cls(
            effect=Effect.DENY,
            reason="No statement matched the request",
            statements_evaluated=statements_evaluated,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.effect.value,
            "reason": self.reason,
            "matched": self.matched.to_dict() if self.matched else None,
            "statements_evaluated": self.statements_evaluated,
        }


@runtime_checkable
class DecisionEngine(Protocol):
    """
    Protocol for engines that turn an effective policy set into decisions.

    Example:
        >>> class AllowEverything:
        ...     def decide(self, policies, action, resource):
        ...         return Decision(Effect.ALLOW, "allow everything")
        ...
        ...     def allowed_actions(self, policies, resource):
        ...         return []
    """

    def decide(
        self,
        policies: Sequence[CompiledPolicy],
        action: str,
        resource: str,
    ) -> Decision:
        """Decide a single (action, resource) pair against ``policies``."""
        ...

    def allowed_actions(
        self,
        policies: Sequence[CompiledPolicy],
        resource: str,
    ) -> list[str]:
        """List the actions ``policies`` allow on ``resource``."""
        ...


class BaseDecisionEngine(ABC):
    """
    Abstract base class for decision engines.

    Provides the async wrappers; subclasses only implement the
    synchronous evaluation methods.

    Attributes:
        name: Human-readable name for the engine.
    """

    name: str = "base"

    @abstractmethod
    def decide(
        self,
        policies: Sequence[CompiledPolicy],
        action: str,
        resource: str,
    ) -> Decision:
        pass

    @abstractmethod
    def allowed_actions(
        self,
        policies: Sequence[CompiledPolicy],
        resource: str,
    ) -> list[str]:
        pass

    async def decide_async(
        self,
        policies: Sequence[CompiledPolicy],
        action: str,
        resource: str,
    ) -> Decision:
        """
        Async version of decide.

        Default implementation wraps the sync version.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.decide, policies, action, resource)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"

