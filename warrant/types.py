"""
Core type definitions for Warrant.

This module defines the data structures shared by every layer of the
engine: policies and their statements, the entities policies attach to,
attachment instances, compiled policies handed to the evaluator, and the
results returned by the decision API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Effect(str, Enum):
    """Effect of a policy statement."""

    ALLOW = "Allow"
    DENY = "Deny"


class EntityType(str, Enum):
    """Kinds of entity a policy can be attached to."""

    ORGANIZATION = "organization"
    TEAM = "team"
    USER = "user"


@dataclass(frozen=True)
class EntityRef:
    """
    Reference to an organization, team or user.

    Example:
        >>> EntityRef.team("engineering")
        EntityRef(type=<EntityType.TEAM: 'team'>, id='engineering')
    """
    type: EntityType
    id: str

    @classmethod
    def organization(cls, organization_id: str) -> EntityRef:
        return cls(EntityType.ORGANIZATION, organization_id)

    @classmethod
    def team(cls, team_id: str) -> EntityRef:
        return cls(EntityType.TEAM, team_id)

    @classmethod
    def user(cls, user_id: str) -> EntityRef:
        return cls(EntityType.USER, user_id)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "id": self.id}


@dataclass(frozen=True)
class Statement:
    """
    A single Allow/Deny rule of a policy.

    Action and Resource patterns may contain ``*`` wildcards. Resource
    patterns may also contain ``${name}`` placeholders that are filled in
    from the variables of the attachment the policy is evaluated through.

    Attributes:
        effect: Allow or Deny.
        actions: Non-empty tuple of action patterns.
        resources: Non-empty tuple of resource patterns.

    Example:
        >>> stmt = Statement(
        ...     effect=Effect.ALLOW,
        ...     actions=("read",),
        ...     resources=("db:${database}",),
        ... )
    """
    effect: Effect
    actions: tuple[str, ...]
    resources: tuple[str, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Statement:
        """Build a statement from its ``{"Effect", "Action", "Resource"}`` form."""
        return cls(
            effect=Effect(data["Effect"]),
            actions=tuple(data["Action"]),
            resources=tuple(data["Resource"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the document form stored alongside the policy."""
        return {
            "Effect": self.effect.value,
            "Action": list(self.actions),
            "Resource": list(self.resources),
        }


@dataclass(frozen=True)
class Policy:
    """
    A named, versioned list of statements.

    A policy owned by an organization is a tenant policy; a policy with no
    owner is shared and visible to every tenant.
    """
    id: str
    version: str
    name: str
    statements: tuple[Statement, ...]
    organization_id: str | None = None

    @property
    def is_shared(self) -> bool:
        return self.organization_id is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "name": self.name,
            "organizationId": self.organization_id,
            "statements": {"Statement": [s.to_dict() for s in self.statements]},
        }


@dataclass(frozen=True)
class Organization:
    """A tenant."""
    id: str
    name: str
    description: str = ""
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }
        if self.metadata:
            data["metadata"] = self.metadata
        return data


@dataclass(frozen=True)
class Team:
    """
    A team inside an organization.

    ``path`` is the materialized ancestry of the team, root first and the
    team itself last.
    """
    id: str
    name: str
    organization_id: str
    path: tuple[str, ...]
    description: str = ""

    @property
    def parent_id(self) -> str | None:
        return self.path[-2] if len(self.path) > 1 else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "organizationId": self.organization_id,
            "path": list(self.path),
        }


@dataclass(frozen=True)
class User:
    """A user of an organization."""
    id: str
    name: str
    organization_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "organizationId": self.organization_id}


@dataclass(frozen=True)
class PolicyRef:
    """A request to attach ``policy_id`` with the given variables."""
    policy_id: str
    variables: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InstanceAmendment:
    """A request to replace the variables of an existing attachment instance."""
    instance_id: int
    variables: dict[str, str] = field(default_factory=dict)
    policy_id: str | None = None


@dataclass(frozen=True)
class PolicyInstance:
    """
    One attachment of a policy to an entity.

    Attributes:
        policy_id: The attached policy.
        name: Policy name at the time of reading.
        version: Policy version at the time of reading.
        variables: Substitution variables of this attachment.
        instance_id: Store-generated identifier of the attachment.
        entity: The organization, team or user holding the attachment.
    """
    policy_id: str
    name: str
    version: str
    variables: dict[str, str]
    instance_id: int
    entity: EntityRef

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.policy_id,
            "name": self.name,
            "version": self.version,
            "variables": dict(self.variables),
            "instance": self.instance_id,
            "entity": self.entity.to_dict(),
        }


@dataclass(frozen=True)
class CompiledPolicy:
    """
    A policy with its attachment variables substituted.

    This is the unit the statement engine evaluates. ``source`` and
    ``instance_id`` record which attachment produced it; both are None for
    shared policies pulled in from the shared pool.
    """
    policy_id: str
    name: str
    version: str
    statements: tuple[Statement, ...]
    variables: dict[str, str] = field(default_factory=dict)
    source: EntityRef | None = None
    instance_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.policy_id,
            "name": self.name,
            "version": self.version,
            "statements": [s.to_dict() for s in self.statements],
            "variables": dict(self.variables),
            "source": self.source.to_dict() if self.source else None,
            "instance": self.instance_id,
        }


@dataclass(frozen=True)
class AccessResult:
    """Result of an ``is_authorized`` call."""
    access: bool

    def to_dict(self) -> dict[str, Any]:
        return {"access": self.access}


@dataclass(frozen=True)
class ActionsResult:
    """Result of a ``list_actions`` call."""
    actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"actions": list(self.actions)}


@dataclass(frozen=True)
class ResourceActions:
    """Allowed actions for one resource of a ``list_actions_on_resources`` batch."""
    resource: str
    actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"resource": self.resource, "actions": list(self.actions)}


@dataclass(frozen=True)
class AccessCheck:
    """One entry of a ``batch_authorize`` result."""
    action: str
    resource: str
    access: bool

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action, "resource": self.resource, "access": self.access}
