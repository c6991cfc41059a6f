"""
Read queries shared by the store, the attachment service and the resolver.

All functions take an open session and never commit.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from warrant.store.models import (
    OrganizationModel,
    OrganizationPolicyModel,
    PolicyModel,
    TeamMemberModel,
    TeamModel,
    TeamPolicyModel,
    UserModel,
    UserPolicyModel,
    attachment_owner,
)
from warrant.types import EntityRef, EntityType, Policy, PolicyInstance, Statement

ATTACHMENT_MODEL_BY_ENTITY: dict[EntityType, Any] = {
    EntityType.ORGANIZATION: OrganizationPolicyModel,
    EntityType.TEAM: TeamPolicyModel,
    EntityType.USER: UserPolicyModel,
}

ENTITY_MODEL_BY_TYPE: dict[EntityType, Any] = {
    EntityType.ORGANIZATION: OrganizationModel,
    EntityType.TEAM: TeamModel,
    EntityType.USER: UserModel,
}


# =============================================================================
# Converters
# =============================================================================

def policy_from_model(model: PolicyModel) -> Policy:
    """Convert SQLAlchemy model to a Policy."""
    return Policy(
        id=model.id,
        version=model.version,
        name=model.name,
        statements=tuple(Statement.from_dict(s) for s in model.statements),
        organization_id=model.organization_id,
    )


def instance_from_models(
    attachment: Any,
    policy: PolicyModel,
    entity: EntityRef,
) -> PolicyInstance:
    """Convert an attachment row and its policy to a PolicyInstance."""
    return PolicyInstance(
        policy_id=policy.id,
        name=policy.name,
        version=policy.version,
        variables=dict(attachment.variables or {}),
        instance_id=attachment.instance,
        entity=entity,
    )


# =============================================================================
# Entities
# =============================================================================

def entity_in_organization(session: Session, entity: EntityRef, organization_id: str) -> bool:
    """Check that ``entity`` exists and belongs to ``organization_id``."""
    if entity.type is EntityType.ORGANIZATION:
        return entity.id == organization_id and session.get(OrganizationModel, entity.id) is not None
    model = session.get(ENTITY_MODEL_BY_TYPE[entity.type], entity.id)
    return model is not None and model.organization_id == organization_id


def user_team_ids(session: Session, user_id: str) -> list[str]:
    """Ids of the teams ``user_id`` is a direct member of."""
    rows = session.execute(
        select(TeamMemberModel.team_id).where(TeamMemberModel.user_id == user_id)
    )
    return [row[0] for row in rows]


def ancestor_team_ids(session: Session, team_ids: Sequence[str]) -> list[str]:
    """
    Expand ``team_ids`` to every ancestor-or-self team.

    A team's path lists its ancestors root first, so the union of the paths
    of the given teams is exactly the set of teams whose path is a prefix of
    one of them.
    """
    if not team_ids:
        return []
    expanded: list[str] = []
    seen: set[str] = set()
    for path in session.scalars(select(TeamModel.path).where(TeamModel.id.in_(team_ids))):
        for team_id in path:
            if team_id not in seen:
                seen.add(team_id)
                expanded.append(team_id)
    return expanded


# =============================================================================
# Policies and attachments
# =============================================================================

def load_policies(session: Session, policy_ids: Iterable[str]) -> dict[str, PolicyModel]:
    """Load the policies of ``policy_ids`` that exist, keyed by id."""
    ids = list(dict.fromkeys(policy_ids))
    if not ids:
        return {}
    return {p.id: p for p in session.scalars(select(PolicyModel).where(PolicyModel.id.in_(ids)))}


def attachments_of(
    session: Session,
    entity_type: EntityType,
    entity_ids: Sequence[str],
) -> list[tuple[Any, PolicyModel]]:
    """
    Attachments held by any of ``entity_ids``, joined with their policy.

    Rows come back ordered by upper-cased policy name, then by instance
    creation order.
    """
    if not entity_ids:
        return []
    model = ATTACHMENT_MODEL_BY_ENTITY[entity_type]
    owner = attachment_owner(model)
    stmt = (
        select(model, PolicyModel)
        .join(PolicyModel, PolicyModel.id == model.policy_id)
        .where(owner.in_(entity_ids))
        .order_by(func.upper(PolicyModel.name), model.instance)
    )
    return [(row[0], row[1]) for row in session.execute(stmt)]


def entity_instances(session: Session, entity: EntityRef) -> list[PolicyInstance]:
    """Policy instances attached to ``entity``, in listing order."""
    return [
        instance_from_models(attachment, policy, entity)
        for attachment, policy in attachments_of(session, entity.type, [entity.id])
    ]


def owner_id(attachment: Any) -> str:
    """The id of the entity holding ``attachment``."""
    return getattr(attachment, attachment_owner(type(attachment)).key)
