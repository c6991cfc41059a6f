"""
Decision API.

Every operation resolves the user's effective policy set once and then
asks the decision engine as many questions as it needs. Decisions never
fail because no policy applies: an empty set simply denies everything.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from warrant.engines import DecisionEngine, StatementEngine
from warrant.exceptions import ValidationError
from warrant.resolver import EffectivePolicyResolver
from warrant.types import AccessCheck, AccessResult, ActionsResult, ResourceActions
from warrant.validation import require_identifier

logger = logging.getLogger(__name__)


def _parse_checks(checks: Iterable[Any]) -> list[tuple[str, str]]:
    parsed = []
    for index, check in enumerate(checks):
        if isinstance(check, dict):
            action, resource = check.get("action"), check.get("resource")
        elif isinstance(check, (tuple, list)) and len(check) == 2:
            action, resource = check
        else:
            raise ValidationError(
                field_name="checks",
                errors=[f"checks.{index}: expected an (action, resource) pair"],
            )
        parsed.append(
            (
                require_identifier(f"checks.{index}.action", action),
                require_identifier(f"checks.{index}.resource", resource),
            )
        )
    return parsed


def _parse_resources(resources: Sequence[str]) -> list[str]:
    if isinstance(resources, str) or not isinstance(resources, (list, tuple)):
        raise ValidationError(
            field_name="resources",
            errors=["resources: expected a list of resource strings"],
        )
    return [require_identifier(f"resources.{i}", r) for i, r in enumerate(resources)]


class Authorizer:
    """
    Answers access questions for users.

    Example:
        >>> authorizer = Authorizer(resolver)
        >>> authorizer.is_authorized("alice", "read", "db:sales", "ACME").access
        True
        >>> authorizer.list_actions("alice", "db:sales", "ACME").actions
        ['read']
    """

    def __init__(
        self,
        resolver: EffectivePolicyResolver,
        engine: DecisionEngine | None = None,
    ) -> None:
        self.resolver = resolver
        self.engine = engine or StatementEngine()

    def is_authorized(
        self,
        user_id: str,
        action: str,
        resource: str,
        organization_id: str,
    ) -> AccessResult:
        """
        Check whether ``user_id`` may perform ``action`` on ``resource``.

        Raises:
            ValidationError: If an argument is empty.
        """
        require_identifier("action", action)
        require_identifier("resource", resource)
        policies = self.resolver.resolve(user_id, organization_id)
        decision = self.engine.decide(policies, action, resource)

        logger.debug(
            f"Access {decision.effect.value.lower()}: user={user_id}, action={action}, "
            f"resource={resource}, organization={organization_id}, reason={decision.reason}"
        )
        return AccessResult(access=decision.allowed)

    def list_actions(self, user_id: str, resource: str, organization_id: str) -> ActionsResult:
        """List the actions ``user_id`` may perform on ``resource``."""
        require_identifier("resource", resource)
        policies = self.resolver.resolve(user_id, organization_id)
        return ActionsResult(actions=self.engine.allowed_actions(policies, resource))

    def list_actions_on_resources(
        self,
        user_id: str,
        resources: Sequence[str],
        organization_id: str,
    ) -> list[ResourceActions]:
        """
        List the allowed actions for each resource of a batch.

        The result has one entry per input resource, in input order. The
        policy set is resolved once for the whole batch.
        """
        parsed = _parse_resources(resources)
        policies = self.resolver.resolve(user_id, organization_id)
        return [
            ResourceActions(resource=r, actions=self.engine.allowed_actions(policies, r))
            for r in parsed
        ]

    def batch_authorize(
        self,
        user_id: str,
        checks: Iterable[tuple[str, str] | dict[str, str]],
        organization_id: str,
    ) -> list[AccessCheck]:
        """
        Run several access checks against a single resolution.

        ``checks`` holds ``(action, resource)`` pairs or
        ``{"action", "resource"}`` mappings.
        """
        parsed = _parse_checks(checks)
        policies = self.resolver.resolve(user_id, organization_id)
        return [
            AccessCheck(
                action=action,
                resource=resource,
                access=self.engine.decide(policies, action, resource).allowed,
            )
            for action, resource in parsed
        ]

    def explain(
        self,
        user_id: str,
        action: str,
        resource: str,
        organization_id: str,
    ) -> dict[str, Any]:
        """
        Explain a decision: the verdict plus every statement that matched
        and the attachment it came from.
        """
        require_identifier("action", action)
        require_identifier("resource", resource)
        policies = self.resolver.resolve(user_id, organization_id)

        if isinstance(self.engine, StatementEngine):
            explanation = self.engine.explain(policies, action, resource)
        else:
            explanation = self.engine.decide(policies, action, resource).to_dict()
        explanation["user_id"] = user_id
        explanation["organization_id"] = organization_id
        return explanation

    # ==================== Async Variants ====================

    async def is_authorized_async(
        self,
        user_id: str,
        action: str,
        resource: str,
        organization_id: str,
    ) -> AccessResult:
        """Async version of is_authorized, run in a worker thread."""
        return await asyncio.to_thread(
            self.is_authorized, user_id, action, resource, organization_id
        )

    async def list_actions_async(
        self,
        user_id: str,
        resource: str,
        organization_id: str,
    ) -> ActionsResult:
        return await asyncio.to_thread(self.list_actions, user_id, resource, organization_id)

    async def list_actions_on_resources_async(
        self,
        user_id: str,
        resources: Sequence[str],
        organization_id: str,
    ) -> list[ResourceActions]:
        return await asyncio.to_thread(
            self.list_actions_on_resources, user_id, resources, organization_id
        )

    async def batch_authorize_async(
        self,
        user_id: str,
        checks: Iterable[tuple[str, str] | dict[str, str]],
        organization_id: str,
    ) -> list[AccessCheck]:
        return await asyncio.to_thread(
            self.batch_authorize, user_id, list(checks), organization_id
        )
