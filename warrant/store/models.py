"""
SQLAlchemy models for the Warrant store.

SQLAlchemy 2.0 ORM models for:
- The directory (organizations, teams, users, team membership)
- Policies (tenant-owned and shared)
- Policy attachments on organizations, teams and users

JSON column handling:
- PostgreSQL: Native JSONB
- SQLite/others: TEXT with JSON serialization
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

ID_LENGTH = 128


class JSONType(TypeDecorator):
    """
    Platform-agnostic JSON column.

    Uses JSONB on PostgreSQL, TEXT+JSON elsewhere.
    """
    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            return json.loads(value)
        return value


def variables_key(variables: Mapping[str, str] | None) -> str:
    """
    Canonical form of a variable map.

    Two maps with the same entries always produce the same key, whatever
    their insertion order, so the key can back a unique constraint.
    """
    return json.dumps(dict(variables or {}), sort_keys=True, separators=(",", ":"))


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# =============================================================================
# Directory
# =============================================================================

class OrganizationModel(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    metadata_json: Mapped[dict | None] = mapped_column(JSONType(), nullable=True, name="metadata")


class TeamModel(Base):
    """
    A team with its materialized path.

    ``path`` holds the ids of the team's ancestors root first, followed by
    the team's own id.
    """
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    organization_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("organizations.id"), nullable=False, index=True
    )
    parent_id: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), ForeignKey("teams.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    path: Mapped[list] = mapped_column(JSONType(), nullable=False, default=list)


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    organization_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("organizations.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class TeamMemberModel(Base):
    __tablename__ = "team_members"

    team_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("teams.id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("users.id"), primary_key=True
    )

    __table_args__ = (Index("ix_team_members_user", "user_id"),)


# =============================================================================
# Policies
# =============================================================================

class PolicyModel(Base):
    """
    A policy document.

    ``organization_id`` is NULL for shared policies.
    """
    __tablename__ = "policies"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    organization_id: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), ForeignKey("organizations.id"), nullable=True, index=True
    )
    version: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    statements: Mapped[list] = mapped_column(JSONType(), nullable=False, default=list)


# =============================================================================
# Attachments
# =============================================================================

class OrganizationPolicyModel(Base):
    """At most one instance of a policy per organization."""
    __tablename__ = "organization_policies"

    instance: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("organizations.id"), nullable=False
    )
    policy_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("policies.id"), nullable=False, index=True
    )
    variables: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    variables_key: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    __table_args__ = (
        UniqueConstraint("organization_id", "policy_id", name="uq_organization_policies"),
    )


class TeamPolicyModel(Base):
    """Many instances of a policy per team, one per distinct variable map."""
    __tablename__ = "team_policies"

    instance: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("teams.id"), nullable=False
    )
    policy_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("policies.id"), nullable=False, index=True
    )
    variables: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    variables_key: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    __table_args__ = (
        UniqueConstraint("team_id", "policy_id", "variables_key", name="uq_team_policies"),
    )


class UserPolicyModel(Base):
    """Many instances of a policy per user, one per distinct variable map."""
    __tablename__ = "user_policies"

    instance: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("users.id"), nullable=False
    )
    policy_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("policies.id"), nullable=False, index=True
    )
    variables: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)
    variables_key: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    __table_args__ = (
        UniqueConstraint("user_id", "policy_id", "variables_key", name="uq_user_policies"),
    )


def attachment_owner(model: type[Any]) -> Any:
    """Return the column holding the owning entity id of an attachment model."""
    if model is OrganizationPolicyModel:
        return OrganizationPolicyModel.organization_id
    if model is TeamPolicyModel:
        return TeamPolicyModel.team_id
    return UserPolicyModel.user_id


ATTACHMENT_MODELS = (OrganizationPolicyModel, TeamPolicyModel, UserPolicyModel)
