"""
Policy catalogue.

Tenant policies belong to one organization and are only visible from it.
Shared policies have no owner and are visible from every organization;
they are managed through the ``*_shared_policy`` methods.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from warrant.compiler import find_variables
from warrant.exceptions import ConflictError, NotFoundError
from warrant.store.models import (
    ATTACHMENT_MODELS,
    OrganizationModel,
    OrganizationPolicyModel,
    PolicyModel,
    TeamModel,
    TeamPolicyModel,
    UserModel,
    UserPolicyModel,
)
from warrant.store.queries import instance_from_models, owner_id, policy_from_model
from warrant.store.transaction import TransactionManager
from warrant.types import EntityRef, EntityType, Policy, PolicyInstance
from warrant.validation import parse_policy, require_identifier

logger = logging.getLogger(__name__)


def _new_policy_id() -> str:
    return str(uuid.uuid4())


class PolicyStore:
    """
    Create, read, update and delete policies.

    Example:
        >>> store = PolicyStore(transactions)
        >>> policy = store.create_policy(
        ...     "ACME",
        ...     version="2016-07-01",
        ...     name="Read sales",
        ...     statements={"Statement": [
        ...         {"Effect": "Allow", "Action": ["read"], "Resource": ["db:sales"]},
        ...     ]},
        ... )
    """

    def __init__(self, transactions: TransactionManager) -> None:
        self.transactions = transactions

    # -------------------------------------------------------------------------
    # Tenant policies
    # -------------------------------------------------------------------------

    def create_policy(
        self,
        organization_id: str,
        version: str,
        name: str,
        statements: Any,
        policy_id: str | None = None,
    ) -> Policy:
        """
        Create a policy owned by ``organization_id``.

        Raises:
            ValidationError: If the policy document is malformed.
            NotFoundError: If the organization does not exist.
            ConflictError: If ``policy_id`` is already taken.
        """
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("create_policy") as session:
            if session.get(OrganizationModel, organization_id) is None:
                raise NotFoundError("organization", organization_id)
            policy = self._insert(session, organization_id, version, name, statements, policy_id)

        logger.info(f"Policy created: id={policy.id}, organization={organization_id}")
        return policy

    def read_policy(self, policy_id: str, organization_id: str) -> Policy:
        """
        Read a policy of ``organization_id``.

        Raises:
            NotFoundError: If no such policy is owned by the organization.
        """
        require_identifier("policy_id", policy_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("read_policy") as session:
            return policy_from_model(self._owned(session, policy_id, organization_id))

    def update_policy(
        self,
        policy_id: str,
        organization_id: str,
        version: str,
        name: str,
        statements: Any,
    ) -> Policy:
        """
        Replace the version, name and statements of a tenant policy.

        Attachments keep pointing at the policy; later decisions see the new
        statements.
        """
        require_identifier("organization_id", organization_id)
        _, version, name, parsed = parse_policy(version, name, statements, policy_id)
        with self.transactions.transaction("update_policy") as session:
            model = self._owned(session, policy_id, organization_id)
            self._apply(model, version, name, parsed)
            policy = policy_from_model(model)

        logger.info(f"Policy updated: id={policy_id}, organization={organization_id}")
        return policy

    def delete_policy(self, policy_id: str, organization_id: str) -> None:
        """Delete a tenant policy together with every attachment of it."""
        require_identifier("policy_id", policy_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("delete_policy") as session:
            model = self._owned(session, policy_id, organization_id)
            self._delete(session, model)

        logger.info(f"Policy deleted: id={policy_id}, organization={organization_id}")

    def list_policies(self, organization_id: str) -> list[Policy]:
        """List the policies owned by ``organization_id``, ordered by name."""
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("list_policies") as session:
            models = session.scalars(
                select(PolicyModel)
                .where(PolicyModel.organization_id == organization_id)
                .order_by(func.upper(PolicyModel.name), PolicyModel.id)
            )
            return [policy_from_model(m) for m in models]

    # -------------------------------------------------------------------------
    # Shared policies
    # -------------------------------------------------------------------------

    def create_shared_policy(
        self,
        version: str,
        name: str,
        statements: Any,
        policy_id: str | None = None,
    ) -> Policy:
        """Create a policy visible to every organization."""
        with self.transactions.transaction("create_shared_policy") as session:
            policy = self._insert(session, None, version, name, statements, policy_id)

        logger.info(f"Shared policy created: id={policy.id}")
        return policy

    def read_shared_policy(self, policy_id: str) -> Policy:
        require_identifier("policy_id", policy_id)
        with self.transactions.transaction("read_shared_policy") as session:
            return policy_from_model(self._shared(session, policy_id))

    def update_shared_policy(
        self,
        policy_id: str,
        version: str,
        name: str,
        statements: Any,
    ) -> Policy:
        _, version, name, parsed = parse_policy(version, name, statements, policy_id)
        with self.transactions.transaction("update_shared_policy") as session:
            model = self._shared(session, policy_id)
            self._apply(model, version, name, parsed)
            policy = policy_from_model(model)

        logger.info(f"Shared policy updated: id={policy_id}")
        return policy

    def delete_shared_policy(self, policy_id: str) -> None:
        """Delete a shared policy and its attachments in every organization."""
        require_identifier("policy_id", policy_id)
        with self.transactions.transaction("delete_shared_policy") as session:
            self._delete(session, self._shared(session, policy_id))

        logger.info(f"Shared policy deleted: id={policy_id}")

    def list_shared_policies(self) -> list[Policy]:
        with self.transactions.transaction("list_shared_policies") as session:
            models = session.scalars(
                select(PolicyModel)
                .where(PolicyModel.organization_id.is_(None))
                .order_by(func.upper(PolicyModel.name), PolicyModel.id)
            )
            return [policy_from_model(m) for m in models]

    # -------------------------------------------------------------------------
    # Instances and variables
    # -------------------------------------------------------------------------

    def list_policy_instances(self, policy_id: str, organization_id: str) -> list[PolicyInstance]:
        """
        List every attachment of a policy inside ``organization_id``.

        The policy may be owned by the organization or shared. Instances are
        returned organization first, then teams, then users, each group in
        creation order.

        Raises:
            NotFoundError: If the policy is not visible from the organization.
        """
        require_identifier("policy_id", policy_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("list_policy_instances") as session:
            policy = self._visible(session, policy_id, organization_id)
            instances: list[PolicyInstance] = []

            org_rows = session.scalars(
                select(OrganizationPolicyModel)
                .where(OrganizationPolicyModel.policy_id == policy_id)
                .where(OrganizationPolicyModel.organization_id == organization_id)
                .order_by(OrganizationPolicyModel.instance)
            )
            for row in org_rows:
                instances.append(
                    instance_from_models(row, policy, EntityRef.organization(organization_id))
                )

            for model, entity_model, entity_type in (
                (TeamPolicyModel, TeamModel, EntityType.TEAM),
                (UserPolicyModel, UserModel, EntityType.USER),
            ):
                owner = model.team_id if model is TeamPolicyModel else model.user_id
                rows = session.scalars(
                    select(model)
                    .join(entity_model, entity_model.id == owner)
                    .where(model.policy_id == policy_id)
                    .where(entity_model.organization_id == organization_id)
                    .order_by(model.instance)
                )
                for row in rows:
                    instances.append(
                        instance_from_models(row, policy, EntityRef(entity_type, owner_id(row)))
                    )
            return instances

    def read_policy_variables(self, policy_id: str, organization_id: str) -> list[str]:
        """
        List the ``${name}`` placeholders a policy's resources reference.

        Raises:
            NotFoundError: If the policy is not visible from the organization.
        """
        require_identifier("policy_id", policy_id)
        require_identifier("organization_id", organization_id)
        with self.transactions.transaction("read_policy_variables") as session:
            policy = policy_from_model(self._visible(session, policy_id, organization_id))
        return find_variables(policy.statements)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _insert(
        self,
        session: Session,
        organization_id: str | None,
        version: str,
        name: str,
        statements: Any,
        policy_id: str | None,
    ) -> Policy:
        policy_id, version, name, parsed = parse_policy(version, name, statements, policy_id)
        policy_id = policy_id or _new_policy_id()
        if session.get(PolicyModel, policy_id) is not None:
            raise ConflictError(f"Policy '{policy_id}' already exists", policy_id=policy_id)

        model = PolicyModel(
            id=policy_id,
            organization_id=organization_id,
            version=version,
            name=name,
            statements=[s.to_dict() for s in parsed],
        )
        session.add(model)
        session.flush()
        return policy_from_model(model)

    @staticmethod
    def _apply(model: PolicyModel, version: str, name: str, statements: tuple) -> None:
        model.version = version
        model.name = name
        model.statements = [s.to_dict() for s in statements]

    @staticmethod
    def _owned(session: Session, policy_id: str, organization_id: str) -> PolicyModel:
        model = session.get(PolicyModel, policy_id)
        if model is None or model.organization_id != organization_id:
            raise NotFoundError("policy", policy_id, organization_id=organization_id)
        return model

    @staticmethod
    def _shared(session: Session, policy_id: str) -> PolicyModel:
        model = session.get(PolicyModel, policy_id)
        if model is None or model.organization_id is not None:
            raise NotFoundError("shared policy", policy_id)
        return model

    @staticmethod
    def _visible(session: Session, policy_id: str, organization_id: str) -> PolicyModel:
        model = session.get(PolicyModel, policy_id)
        if model is None or model.organization_id not in (None, organization_id):
            raise NotFoundError("policy", policy_id, organization_id=organization_id)
        return model

    @staticmethod
    def _delete(session: Session, model: PolicyModel) -> None:
        for attachment_model in ATTACHMENT_MODELS:
            session.execute(
                delete(attachment_model).where(attachment_model.policy_id == model.id)
            )
        session.delete(model)
        session.flush()
