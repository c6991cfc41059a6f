"""
Pytest fixtures for Warrant tests.

Provides common fixtures used across all test modules.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import pytest

from warrant import Effect, Policy, Statement, Warrant, WarrantConfig
from warrant.compiler import compile_policy
from warrant.types import CompiledPolicy

StatementSpec = tuple[str, list[str], list[str]]


def _document(statements: list[StatementSpec]) -> dict[str, Any]:
    return {
        "Statement": [
            {"Effect": effect, "Action": actions, "Resource": resources}
            for effect, actions, resources in statements
        ]
    }


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def config() -> WarrantConfig:
    """In-memory SQLite configuration."""
    return WarrantConfig(root_organization_id="ROOT", database_url="sqlite://")


@pytest.fixture
def warrant(config: WarrantConfig) -> Generator[Warrant, None, None]:
    """A Warrant instance with an empty schema."""
    instance = Warrant(config)
    instance.create_schema()
    yield instance
    instance.close()


@pytest.fixture
def seeded(warrant: Warrant) -> Warrant:
    """
    A Warrant instance with a small directory:

    - ROOT: admin
    - ACME: teams engineering -> backend -> api, and ops;
      alice in api, bob in backend, carol in no team, erin in ops
    - GLOBEX: dave
    """
    directory = warrant.directory
    directory.create_organization("ROOT", "Root")
    directory.create_organization("ACME", "Acme Corp")
    directory.create_organization("GLOBEX", "Globex")

    directory.create_team("ACME", "engineering", "Engineering")
    directory.create_team("ACME", "backend", "Backend", parent_id="engineering")
    directory.create_team("ACME", "api", "API", parent_id="backend")
    directory.create_team("ACME", "ops", "Ops")

    directory.create_user("ROOT", "admin", "Admin")
    directory.create_user("ACME", "alice", "Alice")
    directory.create_user("ACME", "bob", "Bob")
    directory.create_user("ACME", "carol", "Carol")
    directory.create_user("ACME", "erin", "Erin")
    directory.create_user("GLOBEX", "dave", "Dave")

    directory.add_team_members("api", ["alice"], "ACME")
    directory.add_team_members("backend", ["bob"], "ACME")
    directory.add_team_members("ops", ["erin"], "ACME")
    return warrant


# ============================================================================
# Policy Fixtures
# ============================================================================


@pytest.fixture
def make_policy(warrant: Warrant) -> Callable[..., Policy]:
    """Factory creating a tenant policy from (effect, actions, resources) triples."""

    def factory(
        organization_id: str,
        policy_id: str,
        statements: list[StatementSpec],
        name: str | None = None,
    ) -> Policy:
        return warrant.policies.create_policy(
            organization_id,
            version="2016-07-01",
            name=name or policy_id,
            statements=_document(statements),
            policy_id=policy_id,
        )

    return factory


@pytest.fixture
def make_shared_policy(warrant: Warrant) -> Callable[..., Policy]:
    """Factory creating a shared policy from (effect, actions, resources) triples."""

    def factory(
        policy_id: str,
        statements: list[StatementSpec],
        name: str | None = None,
    ) -> Policy:
        return warrant.policies.create_shared_policy(
            version="2016-07-01",
            name=name or policy_id,
            statements=_document(statements),
            policy_id=policy_id,
        )

    return factory


@pytest.fixture
def compiled() -> Callable[..., CompiledPolicy]:
    """Factory building an in-memory compiled policy, no store involved."""

    def factory(
        statements: list[StatementSpec],
        variables: dict[str, str] | None = None,
        policy_id: str = "p1",
    ) -> CompiledPolicy:
        policy = Policy(
            id=policy_id,
            version="1",
            name=policy_id,
            statements=tuple(
                Statement(Effect(effect), tuple(actions), tuple(resources))
                for effect, actions, resources in statements
            ),
        )
        return compile_policy(policy, variables)

    return factory
