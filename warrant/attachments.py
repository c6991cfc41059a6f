"""
Policy attachments.

A policy reaches a user by being attached to the user, to one of the
user's teams (or their ancestors), or to the user's organization. Each
attachment is an *instance* carrying its own variable map.

Uniqueness rules:
- Organization: one instance per policy. Attaching again is a no-op.
- Team and user: one instance per (policy, variables). Attaching the same
  pair again is a ConflictError; different variables make a new instance.

Every operation runs as a list of tasks inside one transaction. The checks
always run in the same order: entity exists in the organization, every
policy exists, every policy is shared or owned by the organization, and
only then the write.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from warrant.exceptions import (
    ConflictError,
    CrossTenantViolation,
    NotFoundError,
    ValidationError,
)
from warrant.store.models import (
    OrganizationPolicyModel,
    PolicyModel,
    attachment_owner,
    variables_key,
)
from warrant.store.queries import (
    ATTACHMENT_MODEL_BY_ENTITY,
    entity_in_organization,
    entity_instances,
    instance_from_models,
    load_policies,
)
from warrant.store.transaction import Job, TransactionManager, is_unique_violation
from warrant.types import (
    EntityRef,
    EntityType,
    InstanceAmendment,
    PolicyInstance,
    PolicyRef,
)
from warrant.validation import parse_amendments, parse_policy_refs, require_identifier

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _entity_label(entity: EntityRef) -> str:
    return f"{entity.type.value}:{entity.id}"


class AttachmentService:
    """
    Attach, replace, amend, detach and list policy instances.

    Example:
        >>> attachments = AttachmentService(transactions)
        >>> attachments.attach(
        ...     EntityRef.team("backend"),
        ...     "read-database",
        ...     organization_id="ACME",
        ...     variables={"database": "sales"},
        ... )
        PolicyInstance(policy_id='read-database', ..., instance_id=1, ...)
    """

    def __init__(self, transactions: TransactionManager) -> None:
        self.transactions = transactions

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def attach(
        self,
        entity: EntityRef,
        policy_id: str,
        organization_id: str,
        variables: dict[str, str] | None = None,
    ) -> PolicyInstance:
        """
        Attach one policy to ``entity``.

        Returns:
            The new instance, or the existing one when an organization
            already holds the policy.

        Raises:
            ValidationError: If the input is malformed.
            NotFoundError: If the entity or the policy does not exist.
            CrossTenantViolation: If the policy belongs to another organization.
            ConflictError: If a team or user already holds the policy with
                the same variables.
        """
        return self.attach_many(
            entity,
            [{"id": policy_id, "variables": dict(variables or {})}],
            organization_id,
        )[0]

    def attach_many(
        self,
        entity: EntityRef,
        policies: Iterable[PolicyRef | dict[str, Any] | str],
        organization_id: str,
    ) -> list[PolicyInstance]:
        """Attach several policies at once; all of them or none are attached."""
        job = self._job(entity, organization_id, policies=parse_policy_refs(policies))
        self.transactions.run(
            [self._check_entity, self._check_policies, self._insert_all],
            job,
            operation="attach",
        )
        logger.info(
            f"Policies attached: entity={_entity_label(entity)}, "
            f"organization={organization_id}, policies={[r.policy_id for r in job.params['policies']]}"
        )
        return job.result

    def replace(
        self,
        entity: EntityRef,
        policies: Iterable[PolicyRef | dict[str, Any] | str],
        organization_id: str,
    ) -> list[PolicyInstance]:
        """
        Remove every attachment of ``entity`` and attach ``policies`` in order.

        If any attach fails the entity keeps its previous attachments.
        """
        job = self._job(entity, organization_id, policies=parse_policy_refs(policies))
        self.transactions.run(
            [self._check_entity, self._check_policies, self._clear, self._insert_all],
            job,
            operation="replace",
        )
        logger.info(
            f"Policies replaced: entity={_entity_label(entity)}, "
            f"organization={organization_id}, count={len(job.result)}"
        )
        return job.result

    def amend(
        self,
        entity: EntityRef,
        amendments: Iterable[InstanceAmendment | dict[str, Any]],
        organization_id: str,
    ) -> list[PolicyInstance]:
        """
        Replace the variables of existing instances.

        Either every amendment applies or none does.

        Raises:
            NotFoundError: If an instance is not attached to ``entity``.
            ConflictError: If the new variables equal those of another
                instance of the same policy on ``entity``.
        """
        job = self._job(entity, organization_id, amendments=parse_amendments(amendments))
        self.transactions.run(
            [self._check_entity, self._apply_amendments],
            job,
            operation="amend",
        )
        logger.info(
            f"Policy instances amended: entity={_entity_label(entity)}, "
            f"organization={organization_id}, "
            f"instances={[a.instance_id for a in job.params['amendments']]}"
        )
        return job.result

    def detach(
        self,
        entity: EntityRef,
        policy_id: str,
        organization_id: str,
        instance_id: int | None = None,
    ) -> None:
        """
        Detach a policy from ``entity``.

        With ``instance_id`` only that instance is removed, and a missing
        instance is a NotFoundError. Without it every instance of the policy
        on the entity is removed.
        """
        require_identifier("policy_id", policy_id)
        job = self._job(entity, organization_id, policy_id=policy_id, instance_id=instance_id)
        self.transactions.run([self._check_entity, self._delete_policy], job, operation="detach")
        logger.info(
            f"Policy detached: entity={_entity_label(entity)}, organization={organization_id}, "
            f"policy={policy_id}, instance={instance_id}, removed={job.result}"
        )

    def detach_all(self, entity: EntityRef, organization_id: str) -> None:
        """Remove every attachment of ``entity``."""
        job = self._job(entity, organization_id)
        self.transactions.run([self._check_entity, self._clear], job, operation="detach_all")
        logger.info(
            f"All policies detached: entity={_entity_label(entity)}, organization={organization_id}"
        )

    def list(self, entity: EntityRef, organization_id: str) -> list[PolicyInstance]:
        """
        List the instances attached to ``entity``.

        Ordered by policy name (case-insensitive), then by creation order.
        """
        job = self._job(entity, organization_id)
        self.transactions.run([self._check_entity, self._collect], job, operation="list")
        return job.result

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    @staticmethod
    def _job(entity: EntityRef, organization_id: str, **params: Any) -> Job:
        if not isinstance(entity, EntityRef):
            raise ValidationError(field_name="entity", errors=["entity: must be an EntityRef"])
        require_identifier(f"{entity.type.value}_id", entity.id)
        require_identifier("organization_id", organization_id)
        return Job(params={"entity": entity, "organization_id": organization_id, **params})

    @staticmethod
    def _check_entity(job: Job, session: Session) -> None:
        entity: EntityRef = job.params["entity"]
        organization_id = job.params["organization_id"]
        if not entity_in_organization(session, entity, organization_id):
            raise NotFoundError(entity.type.value, entity.id, organization_id=organization_id)

    @staticmethod
    def _check_policies(job: Job, session: Session) -> None:
        refs: list[PolicyRef] = job.params["policies"]
        organization_id = job.params["organization_id"]
        policies = load_policies(session, (r.policy_id for r in refs))

        missing = [r.policy_id for r in refs if r.policy_id not in policies]
        if missing:
            raise NotFoundError(
                "policy", list(dict.fromkeys(missing)), organization_id=organization_id
            )

        for ref in refs:
            owner = policies[ref.policy_id].organization_id
            if owner is not None and owner != organization_id:
                raise CrossTenantViolation(ref.policy_id, owner, organization_id)

        job.params["policy_models"] = policies

    @staticmethod
    def _clear(job: Job, session: Session) -> None:
        entity: EntityRef = job.params["entity"]
        model = ATTACHMENT_MODEL_BY_ENTITY[entity.type]
        session.execute(delete(model).where(attachment_owner(model) == entity.id))

    def _insert_all(self, job: Job, session: Session) -> None:
        entity: EntityRef = job.params["entity"]
        policies: dict[str, PolicyModel] = job.params["policy_models"]
        instances = []
        for ref in job.params["policies"]:
            if entity.type is EntityType.ORGANIZATION:
                row = self._insert_organization(session, entity.id, ref)
            else:
                row = self._insert_instance(session, entity, ref)
            instances.append(instance_from_models(row, policies[ref.policy_id], entity))
        job.result = instances

    @staticmethod
    def _insert_organization(session: Session, organization_id: str, ref: PolicyRef) -> Any:
        values = {
            "organization_id": organization_id,
            "policy_id": ref.policy_id,
            "variables": dict(ref.variables),
            "variables_key": variables_key(ref.variables),
        }
        insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
        if insert is not None:
            session.execute(
                insert(OrganizationPolicyModel)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["organization_id", "policy_id"])
            )
        else:
            exists = session.scalar(
                select(OrganizationPolicyModel.instance)
                .where(OrganizationPolicyModel.organization_id == organization_id)
                .where(OrganizationPolicyModel.policy_id == ref.policy_id)
            )
            if exists is None:
                session.add(OrganizationPolicyModel(**values))
                session.flush()

        return session.scalars(
            select(OrganizationPolicyModel)
            .where(OrganizationPolicyModel.organization_id == organization_id)
            .where(OrganizationPolicyModel.policy_id == ref.policy_id)
        ).one()

    @staticmethod
    def _insert_instance(session: Session, entity: EntityRef, ref: PolicyRef) -> Any:
        model = ATTACHMENT_MODEL_BY_ENTITY[entity.type]
        row = model(
            policy_id=ref.policy_id,
            variables=dict(ref.variables),
            variables_key=variables_key(ref.variables),
        )
        setattr(row, attachment_owner(model).key, entity.id)
        session.add(row)
        try:
            session.flush()
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise
            raise ConflictError(
                f"Policy '{ref.policy_id}' is already attached to "
                f"{entity.type.value} '{entity.id}' with the same variables",
                entity=_entity_label(entity),
                policy_id=ref.policy_id,
                variables=dict(ref.variables),
            ) from e
        return row

    @staticmethod
    def _apply_amendments(job: Job, session: Session) -> None:
        entity: EntityRef = job.params["entity"]
        amendments: list[InstanceAmendment] = job.params["amendments"]
        model = ATTACHMENT_MODEL_BY_ENTITY[entity.type]
        owner = attachment_owner(model)

        ids = [a.instance_id for a in amendments]
        rows = {
            row.instance: row
            for row in session.scalars(
                select(model).where(owner == entity.id).where(model.instance.in_(ids))
            )
        }
        missing = [
            str(a.instance_id)
            for a in amendments
            if a.instance_id not in rows
            or (a.policy_id is not None and rows[a.instance_id].policy_id != a.policy_id)
        ]
        if missing:
            raise NotFoundError(
                "policy instance", missing, organization_id=job.params["organization_id"]
            )

        policy_ids = {i: rows[i].policy_id for i in ids}
        for amendment in amendments:
            row = rows[amendment.instance_id]
            policy_id = policy_ids[amendment.instance_id]
            row.variables = dict(amendment.variables)
            row.variables_key = variables_key(amendment.variables)
            try:
                session.flush()
            except IntegrityError as e:
                if not is_unique_violation(e):
                    raise
                # rows are expired once a flush fails
                raise ConflictError(
                    f"Policy '{policy_id}' is already attached to "
                    f"{entity.type.value} '{entity.id}' with the same variables",
                    entity=_entity_label(entity),
                    policy_id=policy_id,
                    variables=dict(amendment.variables),
                ) from e

        policies = load_policies(session, policy_ids.values())
        job.result = [
            instance_from_models(rows[i], policies[policy_ids[i]], entity) for i in ids
        ]

    @staticmethod
    def _delete_policy(job: Job, session: Session) -> None:
        entity: EntityRef = job.params["entity"]
        model = ATTACHMENT_MODEL_BY_ENTITY[entity.type]
        stmt = (
            delete(model)
            .where(attachment_owner(model) == entity.id)
            .where(model.policy_id == job.params["policy_id"])
        )
        instance_id = job.params["instance_id"]
        if instance_id is not None:
            stmt = stmt.where(model.instance == instance_id)

        removed = session.execute(stmt).rowcount
        if instance_id is not None and removed == 0:
            raise NotFoundError(
                "policy instance", str(instance_id), organization_id=job.params["organization_id"]
            )
        job.result = removed

    @staticmethod
    def _collect(job: Job, session: Session) -> None:
        job.result = entity_instances(session, job.params["entity"])
