"""
Effective-policy resolution.

For a user and the organization a request is made in, the resolver
gathers every policy instance that applies and compiles it with its
variables. The result is the input of the statement engine.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from warrant.compiler import compile_policy
from warrant.config import WarrantConfig
from warrant.store.models import PolicyModel, UserModel
from warrant.store.queries import (
    ancestor_team_ids,
    attachments_of,
    owner_id,
    policy_from_model,
    user_team_ids,
)
from warrant.store.transaction import TransactionManager
from warrant.types import CompiledPolicy, EntityRef, EntityType
from warrant.validation import require_identifier

logger = logging.getLogger(__name__)


class EffectivePolicyResolver:
    """
    Computes the effective policy set of a user.

    The set is the concatenation of:
    1. Instances attached to the user
    2. Instances attached to the user's teams and all their ancestors
    3. Instances attached to the requested organization, when the user
       belongs to it or to the root organization
    4. Instances attached to the root organization, when a root user acts
       in another organization
    5. Every shared policy, compiled without variables (when the shared
       pool is enabled)

    Instances of steps 1-4 are kept only if their policy is owned by the
    requested organization, is shared, or (under impersonation) is owned
    by the root organization. Nothing is cached: every call reads the
    store.

    Example:
        >>> resolver = EffectivePolicyResolver(transactions, config)
        >>> policies = resolver.resolve("alice", "ACME")
    """

    def __init__(
        self,
        transactions: TransactionManager,
        config: WarrantConfig | None = None,
    ) -> None:
        self.transactions = transactions
        self.config = config or WarrantConfig()

    def resolve(self, user_id: str, organization_id: str) -> list[CompiledPolicy]:
        """
        Resolve and compile the policies that apply to ``user_id`` for a
        request in ``organization_id``.

        An unknown user resolves to an empty set, so every decision made on
        it is a deny.
        """
        require_identifier("user_id", user_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("resolve") as session:
            compiled = self._resolve(session, user_id, organization_id)

        logger.debug(
            f"Resolved {len(compiled)} policies for user={user_id}, organization={organization_id}"
        )
        return compiled

    def _resolve(self, session: Session, user_id: str, organization_id: str) -> list[CompiledPolicy]:
        user = session.get(UserModel, user_id)
        if user is None:
            logger.debug(f"Unknown user {user_id}, resolving to an empty policy set")
            return []

        root_id = self.config.root_organization_id
        foreign = organization_id != user.organization_id
        impersonating = foreign and user.organization_id == root_id
        if foreign and not impersonating:
            logger.debug(
                f"User {user_id} of organization {user.organization_id} is not allowed "
                f"to act in {organization_id}, keeping shared policies only"
            )

        allowed_owners = {organization_id}
        if impersonating:
            allowed_owners.add(root_id)

        team_ids = ancestor_team_ids(session, user_team_ids(session, user_id))

        sources: list[tuple[EntityType, list[str]]] = [
            (EntityType.USER, [user_id]),
            (EntityType.TEAM, team_ids),
        ]
        if not foreign or impersonating:
            sources.append((EntityType.ORGANIZATION, [organization_id]))
        if impersonating:
            sources.append((EntityType.ORGANIZATION, [root_id]))

        compiled: list[CompiledPolicy] = []
        for entity_type, entity_ids in sources:
            for attachment, policy_model in attachments_of(session, entity_type, entity_ids):
                owner = policy_model.organization_id
                if owner is not None and owner not in allowed_owners:
                    logger.debug(
                        f"Skipping policy {policy_model.id} of organization {owner} "
                        f"for request in {organization_id}"
                    )
                    continue
                compiled.append(
                    compile_policy(
                        policy_from_model(policy_model),
                        attachment.variables,
                        source=EntityRef(entity_type, owner_id(attachment)),
                        instance_id=attachment.instance,
                    )
                )

        if self.config.shared_policy_pool:
            compiled.extend(self._shared_pool(session))

        return compiled

    @staticmethod
    def _shared_pool(session: Session) -> list[CompiledPolicy]:
        models = session.scalars(
            select(PolicyModel)
            .where(PolicyModel.organization_id.is_(None))
            .order_by(func.upper(PolicyModel.name), PolicyModel.id)
        )
        return [compile_policy(policy_from_model(m)) for m in models]
