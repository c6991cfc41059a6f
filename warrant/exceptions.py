"""
Custom exceptions for Warrant.

This module defines the exception hierarchy surfaced by the engine. Every
error carries a human-readable message plus a ``details`` mapping so the
transport layer can render it without knowing the concrete class.
"""

from __future__ import annotations

from typing import Any


class WarrantError(Exception):
    """
    Base exception for all Warrant errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     attachments.attach(EntityRef.team("t1"), "p1", organization_id="ACME")
        ... except WarrantError as e:
        ...     logger.error(f"Attach failed: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(WarrantError):
    """
    Raised when input parameters are malformed.

    Attributes:
        field_name: The offending field, when a single one is at fault.
        errors: Every validation problem found, as ``"<location>: <message>"``.

    Example:
        >>> raise ValidationError("action", errors=["action: must not be empty"])
    """

    def __init__(
        self,
        field_name: str | None = None,
        errors: list[str] | None = None,
        message: str | None = None,
    ) -> None:
        self.field_name = field_name
        self.errors = errors or []

        if message is None:
            message = "Invalid input"
            if field_name:
                message += f" for '{field_name}'"
            if self.errors:
                message += ": " + "; ".join(self.errors)

        super().__init__(message, {"field": field_name, "errors": self.errors})


class NotFoundError(WarrantError):
    """
    Raised when a policy, entity or attachment instance does not exist in
    the addressed organization.

    Attributes:
        kind: What was looked up ("policy", "team", "user", ...).
        ids: The identifiers that could not be found.
        organization_id: The organization the lookup was scoped to.

    Example:
        >>> raise NotFoundError("policy", ["p1", "p2"], organization_id="ACME")
    """

    def __init__(
        self,
        kind: str,
        ids: list[str] | str,
        organization_id: str | None = None,
    ) -> None:
        self.kind = kind
        self.ids = [ids] if isinstance(ids, str) else [str(i) for i in ids]
        self.organization_id = organization_id

        if len(self.ids) == 1:
            message = f"{kind.capitalize()} '{self.ids[0]}' not found"
        else:
            message = f"Some {kind} entries [{', '.join(self.ids)}] were not found"
        if organization_id:
            message += f" in organization '{organization_id}'"

        super().__init__(
            message,
            {"kind": kind, "ids": self.ids, "organization_id": organization_id},
        )


class ConflictError(WarrantError):
    """
    Raised when a uniqueness rule is violated.

    Typical causes are attaching a policy twice to the same team or user
    with the same variables, amending an instance into a variable set that
    another instance of the same policy already holds, or creating a policy
    whose id is taken.

    Example:
        >>> raise ConflictError(
        ...     "Policy instance already attached",
        ...     entity="team:t1",
        ...     policy_id="p1",
        ... )
    """

    def __init__(
        self,
        message: str,
        entity: str | None = None,
        policy_id: str | None = None,
        variables: dict[str, str] | None = None,
    ) -> None:
        self.entity = entity
        self.policy_id = policy_id
        self.variables = variables

        super().__init__(
            message,
            {"entity": entity, "policy_id": policy_id, "variables": variables},
        )


class CrossTenantViolation(WarrantError):
    """
    Raised when a tenant policy is referenced from another organization.

    Shared policies never trigger this error.

    Example:
        >>> raise CrossTenantViolation(
        ...     policy_id="p1",
        ...     policy_organization_id="ACME",
        ...     organization_id="GLOBEX",
        ... )
    """

    def __init__(
        self,
        policy_id: str,
        policy_organization_id: str,
        organization_id: str,
    ) -> None:
        self.policy_id = policy_id
        self.policy_organization_id = policy_organization_id
        self.organization_id = organization_id

        message = (
            f"Policy '{policy_id}' belongs to organization "
            f"'{policy_organization_id}' and cannot be used in '{organization_id}'"
        )
        super().__init__(
            message,
            {
                "policy_id": policy_id,
                "policy_organization_id": policy_organization_id,
                "organization_id": organization_id,
            },
        )


class StoreFailure(WarrantError):
    """
    Raised when the storage layer fails for a reason the engine cannot
    interpret (connectivity, non-uniqueness constraint errors, ...).

    The original driver exception is chained as ``__cause__``. The engine
    never retries; retry policy belongs to the caller.
    """

    def __init__(self, operation: str, reason: str | None = None) -> None:
        self.operation = operation
        self.reason = reason

        message = f"Store failure during {operation}"
        if reason:
            message += f": {reason}"

        super().__init__(message, {"operation": operation, "reason": reason})


class ConfigurationError(WarrantError):
    """
    Raised when a ``WarrantConfig`` setting is unusable.

    ``source`` names the environment variable the value came from when the
    configuration was read with ``WarrantConfig.from_env``.

    Example:
        >>> WarrantConfig.from_env(environ={"WARRANT_SHARED_POLICY_POOL": "maybe"})
        Traceback (most recent call last):
        ...
        ConfigurationError: Invalid setting 'shared_policy_pool' (WARRANT_SHARED_POLICY_POOL): ...
    """

    def __init__(
        self,
        config_key: str,
        expected: str,
        value: Any = None,
        source: str | None = None,
    ) -> None:
        self.config_key = config_key
        self.expected = expected
        self.value = value
        self.source = source

        where = f" ({source})" if source else ""
        super().__init__(
            f"Invalid setting '{config_key}'{where}: expected {expected}, got {value!r}",
            {"config_key": config_key, "expected": expected, "source": source},
        )
