"""
Warrant: multi-tenant policy-based authorization.

Organizations, teams and users hold attachable policies made of Allow and
Deny statements over action and resource patterns. Warrant answers "can
this user perform this action on this resource?" and "what can this user
do on these resources?".

Basic Usage:
    >>> from warrant import EntityRef, Warrant
    >>>
    >>> warrant = Warrant()
    >>> warrant.create_schema()
    >>>
    >>> warrant.directory.create_organization("ACME", "Acme Corp")
    >>> warrant.directory.create_team("ACME", "backend", "Backend")
    >>> warrant.directory.create_user("ACME", "alice", "Alice")
    >>> warrant.directory.add_team_members("backend", ["alice"], "ACME")
    >>>
    >>> warrant.policies.create_policy(
    ...     "ACME", "2016-07-01", "Database access",
    ...     {"Statement": [
    ...         {"Effect": "Allow", "Action": ["read"], "Resource": ["db:${database}"]},
    ...     ]},
    ...     policy_id="db-access",
    ... )
    >>> warrant.attachments.attach(
    ...     EntityRef.team("backend"), "db-access", "ACME", variables={"database": "sales"}
    ... )
    >>>
    >>> warrant.is_authorized("alice", "read", "db:sales", "ACME").access
    True
    >>> warrant.list_actions("alice", "db:sales", "ACME").actions
    ['read']
"""

__version__ = "0.1.0"

from warrant.attachments import AttachmentService
from warrant.authorizer import Authorizer
from warrant.config import WarrantConfig
from warrant.context import RequestContext, get_current_context, request_context
from warrant.core import Warrant
from warrant.engines import Decision, StatementEngine
from warrant.exceptions import (
    ConfigurationError,
    ConflictError,
    CrossTenantViolation,
    NotFoundError,
    StoreFailure,
    ValidationError,
    WarrantError,
)
from warrant.matching import matches
from warrant.resolver import EffectivePolicyResolver
from warrant.types import (
    AccessCheck,
    AccessResult,
    ActionsResult,
    CompiledPolicy,
    Effect,
    EntityRef,
    EntityType,
    InstanceAmendment,
    Organization,
    Policy,
    PolicyInstance,
    PolicyRef,
    ResourceActions,
    Statement,
    Team,
    User,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "Warrant",
    "WarrantConfig",
    "Authorizer",
    "AttachmentService",
    "EffectivePolicyResolver",
    "StatementEngine",
    "Decision",
    "matches",
    # Context
    "RequestContext",
    "get_current_context",
    "request_context",
    # Types
    "AccessCheck",
    "AccessResult",
    "ActionsResult",
    "CompiledPolicy",
    "Effect",
    "EntityRef",
    "EntityType",
    "InstanceAmendment",
    "Organization",
    "Policy",
    "PolicyInstance",
    "PolicyRef",
    "ResourceActions",
    "Statement",
    "Team",
    "User",
    # Exceptions
    "WarrantError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "CrossTenantViolation",
    "StoreFailure",
    "ConfigurationError",
]
