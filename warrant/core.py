"""
Core Warrant class.

This module provides the main entry point of the library, wiring the
store, the attachment service, the resolver and the decision API together
from a single configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy.engine import Engine

from warrant.attachments import AttachmentService
from warrant.authorizer import Authorizer
from warrant.config import WarrantConfig
from warrant.context import RequestContext, get_current_context
from warrant.engines import DecisionEngine
from warrant.exceptions import ValidationError
from warrant.resolver import EffectivePolicyResolver
from warrant.store import DirectoryStore, PolicyStore, TransactionManager, create_store_engine
from warrant.types import AccessCheck, AccessResult, ActionsResult, ResourceActions

logger = logging.getLogger(__name__)


class Warrant:
    """
    Main entry point for the Warrant authorization engine.

    Attributes:
        config: The active configuration.
        transactions: Transaction manager shared by every component.
        directory: Organizations, teams, users and membership.
        policies: Tenant and shared policy catalogue.
        attachments: Policy attachments on organizations, teams and users.
        authorizer: The decision API.

    Example:
        >>> from warrant import Warrant, WarrantConfig, EntityRef
        >>>
        >>> warrant = Warrant(WarrantConfig(database_url="sqlite://"))
        >>> warrant.create_schema()
        >>> warrant.directory.create_organization("ACME", "Acme Corp")
        >>> warrant.directory.create_user("ACME", "alice", "Alice")
        >>> warrant.policies.create_policy(
        ...     "ACME", "2016-07-01", "Read sales",
        ...     {"Statement": [{"Effect": "Allow", "Action": ["read"], "Resource": ["db:sales"]}]},
        ...     policy_id="read-sales",
        ... )
        >>> warrant.attachments.attach(EntityRef.user("alice"), "read-sales", "ACME")
        >>> warrant.is_authorized("alice", "read", "db:sales", "ACME").access
        True
    """

    def __init__(
        self,
        config: WarrantConfig | None = None,
        engine: Engine | None = None,
        decision_engine: DecisionEngine | None = None,
    ) -> None:
        """
        Initialize Warrant.

        Args:
            config: Configuration; defaults to an in-memory SQLite store.
            engine: An existing SQLAlchemy engine to use instead of building
                one from ``config.database_url``.
            decision_engine: Engine evaluating the effective policy sets.
        """
        self.config = config or WarrantConfig()
        self._owns_engine = engine is None
        self.engine = engine or create_store_engine(
            self.config.database_url, echo=self.config.echo_sql
        )

        self.transactions = TransactionManager(self.engine)
        self.directory = DirectoryStore(self.transactions)
        self.policies = PolicyStore(self.transactions)
        self.attachments = AttachmentService(self.transactions)
        self.resolver = EffectivePolicyResolver(self.transactions, self.config)
        self.authorizer = Authorizer(self.resolver, decision_engine)

        logger.debug(f"Warrant initialized: {self.config.to_dict()}")

    @classmethod
    def from_env(cls, prefix: str = "WARRANT_") -> Warrant:
        return cls(WarrantConfig.from_env(prefix=prefix))

    def create_schema(self) -> None:
        """Create the store tables that do not exist yet."""
        self.transactions.create_schema()

    def close(self) -> None:
        """Release the database connections, when Warrant created the engine."""
        if self._owns_engine:
            self.engine.dispose()

    def __enter__(self) -> Warrant:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ==================== Request Context ====================

    def context_for(
        self,
        user_id: str,
        organization_override: str | None = None,
    ) -> RequestContext:
        """
        Build the request context of ``user_id``.

        The override is honoured only for members of the root organization.
        """
        user = self.directory.lookup_user(user_id)
        return RequestContext.build(
            user_id=user.id,
            organization_id=user.organization_id,
            organization_override=organization_override,
            root_organization_id=self.config.root_organization_id,
        )

    def authorize(
        self,
        action: str,
        resource: str,
        context: RequestContext | None = None,
    ) -> AccessResult:
        """
        Check access for the caller of ``context``, or of the context bound
        with ``request_context`` when none is given.
        """
        context = context or get_current_context()
        if context is None:
            raise ValidationError(
                field_name="context",
                errors=["context: no request context given or bound"],
            )
        return self.authorizer.is_authorized(
            context.user_id, action, resource, context.organization_id
        )

    # ==================== Decision API ====================

    def is_authorized(
        self,
        user_id: str,
        action: str,
        resource: str,
        organization_id: str,
    ) -> AccessResult:
        return self.authorizer.is_authorized(user_id, action, resource, organization_id)

    def list_actions(self, user_id: str, resource: str, organization_id: str) -> ActionsResult:
        return self.authorizer.list_actions(user_id, resource, organization_id)

    def list_actions_on_resources(
        self,
        user_id: str,
        resources: Sequence[str],
        organization_id: str,
    ) -> list[ResourceActions]:
        return self.authorizer.list_actions_on_resources(user_id, resources, organization_id)

    def batch_authorize(
        self,
        user_id: str,
        checks: Iterable[tuple[str, str] | dict[str, str]],
        organization_id: str,
    ) -> list[AccessCheck]:
        return self.authorizer.batch_authorize(user_id, checks, organization_id)

    def explain(
        self,
        user_id: str,
        action: str,
        resource: str,
        organization_id: str,
    ) -> dict[str, Any]:
        return self.authorizer.explain(user_id, action, resource, organization_id)
