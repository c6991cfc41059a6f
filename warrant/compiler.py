"""
Policy compilation.

Resource patterns may reference ``${name}`` placeholders. Compiling a
statement replaces each placeholder with the value the attachment provides
for it. A placeholder with no value is left as written, so it can only
match a resource that literally contains ``${name}``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from warrant.types import CompiledPolicy, EntityRef, Policy, Statement

VARIABLE_PATTERN = re.compile(r"\$\{(.+?)\}")


def substitute(pattern: str, variables: Mapping[str, str]) -> str:
    """Replace the ``${name}`` placeholders of one pattern."""
    if "${" not in pattern:
        return pattern
    return VARIABLE_PATTERN.sub(
        lambda m: variables.get(m.group(1), m.group(0)),
        pattern,
    )


def compile_statement(statement: Statement, variables: Mapping[str, str]) -> Statement:
    """
    Substitute attachment variables into a statement's resource patterns.

    Action patterns are never substituted.

    Example:
        >>> stmt = Statement(Effect.ALLOW, ("read",), ("db:${name}",))
        >>> compile_statement(stmt, {"name": "sales"}).resources
        ('db:sales',)
    """
    if not variables:
        return statement
    return Statement(
        effect=statement.effect,
        actions=statement.actions,
        resources=tuple(substitute(r, variables) for r in statement.resources),
    )


def compile_policy(
    policy: Policy,
    variables: Mapping[str, str] | None = None,
    source: EntityRef | None = None,
    instance_id: int | None = None,
) -> CompiledPolicy:
    """Compile every statement of ``policy`` with one attachment's variables."""
    values = dict(variables or {})
    return CompiledPolicy(
        policy_id=policy.id,
        name=policy.name,
        version=policy.version,
        statements=tuple(compile_statement(s, values) for s in policy.statements),
        variables=values,
        source=source,
        instance_id=instance_id,
    )


def find_variables(statements: Iterable[Statement]) -> list[str]:
    """
    List the placeholders referenced by resource patterns.

    Returns the placeholders in their ``${name}`` form, without duplicates,
    in order of first appearance.
    """
    found: list[str] = []
    for statement in statements:
        for resource in statement.resources:
            for match in VARIABLE_PATTERN.finditer(resource):
                if match.group(0) not in found:
                    found.append(match.group(0))
    return found
