"""
Request context.

Identifies who is asking and in which organization. Members of the root
organization may address another organization through an override; the
override of anybody else is ignored.
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from warrant.validation import require_identifier

logger = logging.getLogger(__name__)

_current_context: contextvars.ContextVar[RequestContext | None] = contextvars.ContextVar(
    "warrant_request_context", default=None
)


@dataclass(frozen=True)
class RequestContext:
    """
    The caller of a request and the organization it acts in.

    Attributes:
        user_id: The calling user.
        user_organization_id: The organization the user belongs to.
        organization_id: The organization the request is evaluated in.
        root_organization_id: The configured root organization.
    """
    user_id: str
    user_organization_id: str
    organization_id: str
    root_organization_id: str

    @classmethod
    def build(
        cls,
        user_id: str,
        organization_id: str,
        organization_override: str | None = None,
        root_organization_id: str = "ROOT",
    ) -> RequestContext:
        """
        Build the context of a request made by ``user_id`` of
        ``organization_id``.

        Example:
            >>> ctx = RequestContext.build("admin", "ROOT", organization_override="ACME")
            >>> ctx.organization_id, ctx.is_impersonating
            ('ACME', True)
        """
        require_identifier("user_id", user_id)
        require_identifier("organization_id", organization_id)

        effective = organization_id
        if organization_override:
            if organization_id == root_organization_id:
                effective = organization_override
            else:
                logger.debug(
                    f"Ignoring organization override {organization_override} "
                    f"from user {user_id} of {organization_id}"
                )

        return cls(
            user_id=user_id,
            user_organization_id=organization_id,
            organization_id=effective,
            root_organization_id=root_organization_id,
        )

    @property
    def is_root(self) -> bool:
        return self.user_organization_id == self.root_organization_id

    @property
    def is_impersonating(self) -> bool:
        """True when a root user acts in another organization."""
        return self.is_root and self.organization_id != self.user_organization_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_organization_id": self.user_organization_id,
            "organization_id": self.organization_id,
            "impersonating": self.is_impersonating,
        }


def get_current_context() -> RequestContext | None:
    """Get the request context bound to the current task or thread."""
    return _current_context.get()


@contextmanager
def request_context(context: RequestContext) -> Iterator[RequestContext]:
    """
    Bind ``context`` for the duration of a block.

    Example:
        >>> with request_context(ctx):
        ...     warrant.is_authorized(action="read", resource="db:sales")
    """
    token = _current_context.set(context)
    try:
        yield context
    finally:
        _current_context.reset(token)
