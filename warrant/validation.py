"""
Input validation for Warrant.

Policies, attach references and amendments are validated here, at the
boundary, with Pydantic models. Everything past this module works with the
typed dataclasses of ``warrant.types`` and never re-checks shapes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic import ValidationError as PydanticValidationError

from warrant.exceptions import ValidationError
from warrant.types import Effect, InstanceAmendment, PolicyRef, Statement

logger = logging.getLogger(__name__)

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


class StatementSchema(BaseModel):
    """One ``{"Effect", "Action", "Resource"}`` statement."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    effect: Literal["Allow", "Deny"] = Field(alias="Effect")
    action: list[NonEmptyStr] = Field(alias="Action", min_length=1)
    resource: list[NonEmptyStr] = Field(alias="Resource", min_length=1)

    def to_statement(self) -> Statement:
        return Statement(
            effect=Effect(self.effect),
            actions=tuple(self.action),
            resources=tuple(self.resource),
        )


class PolicyDocumentSchema(BaseModel):
    """A policy document: ``{"Version": ..., "Statement": [...]}``."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    version: str | None = Field(default=None, alias="Version")
    statement: list[StatementSchema] = Field(alias="Statement", min_length=1)


class PolicySchema(BaseModel):
    """Parameters of a policy create or update."""

    model_config = ConfigDict(extra="forbid")

    id: NonEmptyStr | None = None
    version: NonEmptyStr
    name: NonEmptyStr
    statements: PolicyDocumentSchema


class PolicyRefSchema(BaseModel):
    """A policy to attach: ``{"id": ..., "variables": {...}}``."""

    model_config = ConfigDict(extra="forbid")

    id: NonEmptyStr
    variables: dict[NonEmptyStr, str] = Field(default_factory=dict)


class InstanceAmendmentSchema(BaseModel):
    """New variables for an attachment instance."""

    model_config = ConfigDict(extra="forbid")

    instance: int = Field(ge=1)
    variables: dict[NonEmptyStr, str] = Field(default_factory=dict)
    id: NonEmptyStr | None = None


def _convert(error: PydanticValidationError, field_name: str | None = None) -> ValidationError:
    """Convert Pydantic errors to our format."""
    errors = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item["loc"])
        errors.append(f"{loc}: {item['msg']}" if loc else item["msg"])
    return ValidationError(field_name=field_name, errors=errors)


def require_identifier(field_name: str, value: Any) -> str:
    """
    Check that ``value`` is a non-empty string identifier.

    Raises:
        ValidationError: If the value is missing, empty or not a string.
    """
    if not isinstance(value, str) or not value:
        raise ValidationError(
            field_name=field_name,
            errors=[f"{field_name}: must be a non-empty string"],
        )
    return value


def parse_statements(raw: Any) -> tuple[Statement, ...]:
    """
    Validate a policy document and return its statements.

    Accepts the document form ``{"Statement": [...]}``, a bare list of
    statement mappings, or a sequence of ``Statement`` objects.

    Raises:
        ValidationError: If the document is malformed or empty.
    """
    if isinstance(raw, (list, tuple)):
        document = {"Statement": [s.to_dict() if isinstance(s, Statement) else s for s in raw]}
    else:
        document = raw
    try:
        parsed = PolicyDocumentSchema.model_validate(document)
    except PydanticValidationError as e:
        raise _convert(e, "statements") from e
    return tuple(s.to_statement() for s in parsed.statement)


def parse_policy(
    version: Any,
    name: Any,
    statements: Any,
    policy_id: Any = None,
) -> tuple[str | None, str, str, tuple[Statement, ...]]:
    """Validate the parameters of a policy create or update."""
    parsed_statements = parse_statements(statements)
    try:
        parsed = PolicySchema.model_validate(
            {
                "id": policy_id,
                "version": version,
                "name": name,
                "statements": {"Statement": [s.to_dict() for s in parsed_statements]},
            }
        )
    except PydanticValidationError as e:
        raise _convert(e, "policy") from e
    return parsed.id, parsed.version, parsed.name, parsed_statements


def parse_policy_ref(raw: PolicyRef | dict[str, Any] | str) -> PolicyRef:
    """
    Validate one attach reference.

    Accepts a ``PolicyRef``, a ``{"id", "variables"}`` mapping, or a bare
    policy id.
    """
    if isinstance(raw, PolicyRef):
        data: Any = {"id": raw.policy_id, "variables": dict(raw.variables)}
    elif isinstance(raw, str):
        data = {"id": raw}
    else:
        data = raw
    try:
        parsed = PolicyRefSchema.model_validate(data)
    except PydanticValidationError as e:
        raise _convert(e, "policies") from e
    return PolicyRef(policy_id=parsed.id, variables=dict(parsed.variables))


def parse_policy_refs(raw: Iterable[PolicyRef | dict[str, Any] | str]) -> list[PolicyRef]:
    """Validate a list of attach references, keeping their order."""
    return [parse_policy_ref(item) for item in raw]


def parse_amendments(
    raw: Iterable[InstanceAmendment | dict[str, Any]],
) -> list[InstanceAmendment]:
    """
    Validate a list of amendments.

    Accepts ``InstanceAmendment`` objects or ``{"instance", "variables",
    "id"}`` mappings.
    """
    amendments = []
    for item in raw:
        if isinstance(item, InstanceAmendment):
            data: Any = {
                "instance": item.instance_id,
                "variables": dict(item.variables),
                "id": item.policy_id,
            }
        else:
            data = item
        try:
            parsed = InstanceAmendmentSchema.model_validate(data)
        except PydanticValidationError as e:
            raise _convert(e, "policies") from e
        amendments.append(
            InstanceAmendment(
                instance_id=parsed.instance,
                variables=dict(parsed.variables),
                policy_id=parsed.id,
            )
        )
    return amendments
