"""
Directory store: organizations, teams, users and team membership.

Only what the authorization core depends on is provided here. Teams carry
a materialized path (root first, the team itself last), and ``move_team``
keeps the paths of a moved subtree consistent.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from warrant.exceptions import ConflictError, NotFoundError, ValidationError
from warrant.store.models import OrganizationModel, TeamMemberModel, TeamModel, UserModel
from warrant.store.transaction import TransactionManager
from warrant.types import Organization, Team, User
from warrant.validation import require_identifier

logger = logging.getLogger(__name__)


def organization_from_model(model: OrganizationModel) -> Organization:
    return Organization(
        id=model.id,
        name=model.name,
        description=model.description or "",
        metadata=model.metadata_json,
    )


def team_from_model(model: TeamModel) -> Team:
    return Team(
        id=model.id,
        name=model.name,
        organization_id=model.organization_id,
        path=tuple(model.path),
        description=model.description or "",
    )


def user_from_model(model: UserModel) -> User:
    return User(id=model.id, name=model.name, organization_id=model.organization_id)


class DirectoryStore:
    """
    Organizations, teams and users.

    Example:
        >>> directory = DirectoryStore(transactions)
        >>> directory.create_organization("ACME", "Acme Corp")
        >>> directory.create_team("ACME", "engineering", "Engineering")
        >>> directory.create_team("ACME", "backend", "Backend", parent_id="engineering")
        >>> directory.read_team("backend", "ACME").path
        ('engineering', 'backend')
    """

    def __init__(self, transactions: TransactionManager) -> None:
        self.transactions = transactions

    # -------------------------------------------------------------------------
    # Organizations
    # -------------------------------------------------------------------------

    def create_organization(
        self,
        organization_id: str,
        name: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Organization:
        require_identifier("organization_id", organization_id)
        require_identifier("name", name)
        with self.transactions.transaction("create_organization") as session:
            if session.get(OrganizationModel, organization_id) is not None:
                raise ConflictError(f"Organization '{organization_id}' already exists")
            model = OrganizationModel(
                id=organization_id,
                name=name,
                description=description,
                metadata_json=metadata,
            )
            session.add(model)
            session.flush()
            organization = organization_from_model(model)

        logger.info(f"Organization created: id={organization_id}")
        return organization

    def read_organization(self, organization_id: str) -> Organization:
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("read_organization") as session:
            model = session.get(OrganizationModel, organization_id)
            if model is None:
                raise NotFoundError("organization", organization_id)
            return organization_from_model(model)

    # -------------------------------------------------------------------------
    # Teams
    # -------------------------------------------------------------------------

    def create_team(
        self,
        organization_id: str,
        team_id: str,
        name: str,
        parent_id: str | None = None,
        description: str = "",
    ) -> Team:
        """
        Create a team, nested under ``parent_id`` when given.

        Raises:
            NotFoundError: If the organization or the parent team does not
                exist in it.
            ConflictError: If ``team_id`` is already taken.
        """
        require_identifier("organization_id", organization_id)
        require_identifier("team_id", team_id)
        require_identifier("name", name)
        with self.transactions.transaction("create_team") as session:
            if session.get(OrganizationModel, organization_id) is None:
                raise NotFoundError("organization", organization_id)
            if session.get(TeamModel, team_id) is not None:
                raise ConflictError(f"Team '{team_id}' already exists")

            path = [team_id]
            if parent_id is not None:
                parent = self._team(session, parent_id, organization_id)
                path = list(parent.path) + [team_id]

            model = TeamModel(
                id=team_id,
                organization_id=organization_id,
                parent_id=parent_id,
                name=name,
                description=description,
                path=path,
            )
            session.add(model)
            session.flush()
            team = team_from_model(model)

        logger.info(f"Team created: id={team_id}, organization={organization_id}, path={path}")
        return team

    def read_team(self, team_id: str, organization_id: str) -> Team:
        require_identifier("team_id", team_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("read_team") as session:
            return team_from_model(self._team(session, team_id, organization_id))

    def move_team(self, team_id: str, parent_id: str | None, organization_id: str) -> Team:
        """
        Move a team under ``parent_id``, or to the top level when None.

        The path of the team and of every one of its descendants is
        rewritten in the same transaction.

        Raises:
            NotFoundError: If the team or the new parent is not in the
                organization.
            ValidationError: If the new parent is the team itself or one of
                its descendants.
        """
        require_identifier("team_id", team_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("move_team") as session:
            team = self._team(session, team_id, organization_id)
            old_path = list(team.path)

            new_prefix: list[str] = []
            if parent_id is not None:
                parent = self._team(session, parent_id, organization_id)
                if team_id in parent.path:
                    raise ValidationError(
                        field_name="parent_id",
                        errors=[f"parent_id: team '{parent_id}' is inside the subtree of '{team_id}'"],
                    )
                new_prefix = list(parent.path)
            new_path = new_prefix + [team_id]

            subtree = [
                t
                for t in session.scalars(
                    select(TeamModel).where(TeamModel.organization_id == organization_id)
                )
                if list(t.path[: len(old_path)]) == old_path
            ]
            for member in subtree:
                member.path = new_path + list(member.path[len(old_path):])
            team.parent_id = parent_id
            session.flush()
            moved = team_from_model(team)

        logger.info(
            f"Team moved: id={team_id}, organization={organization_id}, "
            f"path={new_path}, subtree_size={len(subtree)}"
        )
        return moved

    # -------------------------------------------------------------------------
    # Users and membership
    # -------------------------------------------------------------------------

    def create_user(self, organization_id: str, user_id: str, name: str) -> User:
        require_identifier("organization_id", organization_id)
        require_identifier("user_id", user_id)
        require_identifier("name", name)
        with self.transactions.transaction("create_user") as session:
            if session.get(OrganizationModel, organization_id) is None:
                raise NotFoundError("organization", organization_id)
            if session.get(UserModel, user_id) is not None:
                raise ConflictError(f"User '{user_id}' already exists")
            model = UserModel(id=user_id, organization_id=organization_id, name=name)
            session.add(model)
            session.flush()
            user = user_from_model(model)

        logger.info(f"User created: id={user_id}, organization={organization_id}")
        return user

    def read_user(self, user_id: str, organization_id: str) -> User:
        require_identifier("user_id", user_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("read_user") as session:
            model = session.get(UserModel, user_id)
            if model is None or model.organization_id != organization_id:
                raise NotFoundError("user", user_id, organization_id=organization_id)
            return user_from_model(model)

    def lookup_user(self, user_id: str) -> User:
        """Read a user without knowing its organization."""
        require_identifier("user_id", user_id)
        with self.transactions.transaction("lookup_user") as session:
            model = session.get(UserModel, user_id)
            if model is None:
                raise NotFoundError("user", user_id)
            return user_from_model(model)

    def add_team_members(
        self,
        team_id: str,
        user_ids: Iterable[str],
        organization_id: str,
    ) -> list[str]:
        """
        Add users to a team. Existing memberships are left as they are.

        Returns:
            The ids of the team's members after the change.
        """
        require_identifier("team_id", team_id)
        require_identifier("organization_id", organization_id)
        ids = [require_identifier("user_ids", u) for u in user_ids]
        with self.transactions.transaction("add_team_members") as session:
            self._team(session, team_id, organization_id)
            found = set(
                session.scalars(
                    select(UserModel.id)
                    .where(UserModel.id.in_(ids))
                    .where(UserModel.organization_id == organization_id)
                )
            )
            missing = [u for u in ids if u not in found]
            if missing:
                raise NotFoundError("user", missing, organization_id=organization_id)

            current = set(self._member_ids(session, team_id))
            for user_id in dict.fromkeys(ids):
                if user_id not in current:
                    session.add(TeamMemberModel(team_id=team_id, user_id=user_id))
            session.flush()
            members = self._member_ids(session, team_id)

        logger.info(f"Team members added: team={team_id}, users={ids}")
        return members

    def remove_team_member(self, team_id: str, user_id: str, organization_id: str) -> None:
        require_identifier("team_id", team_id)
        require_identifier("user_id", user_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("remove_team_member") as session:
            self._team(session, team_id, organization_id)
            result = session.execute(
                delete(TeamMemberModel)
                .where(TeamMemberModel.team_id == team_id)
                .where(TeamMemberModel.user_id == user_id)
            )
            if result.rowcount == 0:
                raise NotFoundError("team member", user_id, organization_id=organization_id)

        logger.info(f"Team member removed: team={team_id}, user={user_id}")

    def list_team_members(self, team_id: str, organization_id: str) -> list[str]:
        require_identifier("team_id", team_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("list_team_members") as session:
            self._team(session, team_id, organization_id)
            return self._member_ids(session, team_id)

    def list_user_teams(self, user_id: str, organization_id: str) -> list[Team]:
        """Teams ``user_id`` is a direct member of, ordered by name."""
        require_identifier("user_id", user_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("list_user_teams") as session:
            models = session.scalars(
                select(TeamModel)
                .join(TeamMemberModel, TeamMemberModel.team_id == TeamModel.id)
                .where(TeamMemberModel.user_id == user_id)
                .where(TeamModel.organization_id == organization_id)
                .order_by(func.upper(TeamModel.name), TeamModel.id)
            )
            return [team_from_model(m) for m in models]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _team(session: Session, team_id: str, organization_id: str) -> TeamModel:
        model = session.get(TeamModel, team_id)
        if model is None or model.organization_id != organization_id:
            raise NotFoundError("team", team_id, organization_id=organization_id)
        return model

    @staticmethod
    def _member_ids(session: Session, team_id: str) -> list[str]:
        return list(
            session.scalars(
                select(TeamMemberModel.user_id)
                .where(TeamMemberModel.team_id == team_id)
                .order_by(TeamMemberModel.user_id)
            )
        )
