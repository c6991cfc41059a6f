"""Tests for the policy catalogue."""

from __future__ import annotations

import pytest

from warrant import (
    ConflictError,
    EntityRef,
    NotFoundError,
    Statement,
    ValidationError,
)
from warrant.types import Effect

DOCUMENT = {
    "Version": "2016-07-01",
    "Statement": [{"Effect": "Allow", "Action": ["read"], "Resource": ["db:${database}"]}],
}


class TestTenantPolicies:
    """Create, read, update, delete and list tenant policies."""

    def test_create_and_read(self, seeded):
        created = seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        assert created.organization_id == "ACME"
        assert created.is_shared is False
        assert created.statements == (Statement(Effect.ALLOW, ("read",), ("db:${database}",)),)
        assert seeded.policies.read_policy("p1", "ACME") == created

    def test_generated_id(self, seeded):
        created = seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT)
        assert created.id
        assert seeded.policies.read_policy(created.id, "ACME").name == "Readers"

    def test_duplicate_id(self, seeded):
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        with pytest.raises(ConflictError):
            seeded.policies.create_policy("GLOBEX", "1", "Other", DOCUMENT, policy_id="p1")

    def test_unknown_organization(self, seeded):
        with pytest.raises(NotFoundError):
            seeded.policies.create_policy("NOWHERE", "1", "Readers", DOCUMENT)

    def test_invalid_document(self, seeded):
        with pytest.raises(ValidationError):
            seeded.policies.create_policy("ACME", "1", "Readers", {"Statement": []})

    def test_statement_objects_validated_on_create_and_update(self, seeded):
        with pytest.raises(ValidationError):
            seeded.policies.create_policy(
                "ACME", "1", "Empty", [Statement(Effect.ALLOW, (), ("x",))], policy_id="p1"
            )
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        with pytest.raises(ValidationError):
            seeded.policies.update_policy(
                "p1", "ACME", "2", "Readers", [Statement(Effect.ALLOW, ("read",), ())]
            )
        assert seeded.policies.read_policy("p1", "ACME").version == "1"

    def test_other_organization_cannot_read(self, seeded):
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        with pytest.raises(NotFoundError) as exc_info:
            seeded.policies.read_policy("p1", "GLOBEX")
        assert exc_info.value.organization_id == "GLOBEX"

    def test_update(self, seeded):
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        updated = seeded.policies.update_policy(
            "p1",
            "ACME",
            "2",
            "Writers",
            [{"Effect": "Allow", "Action": ["write"], "Resource": ["*"]}],
        )
        assert updated.version == "2"
        assert updated.name == "Writers"
        assert seeded.policies.read_policy("p1", "ACME").statements[0].actions == ("write",)

    def test_update_changes_live_decisions(self, seeded):
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        seeded.attachments.attach(
            EntityRef.user("alice"), "p1", "ACME", variables={"database": "sales"}
        )
        assert seeded.is_authorized("alice", "read", "db:sales", "ACME").access is True

        seeded.policies.update_policy(
            "p1", "ACME", "2", "Readers",
            [{"Effect": "Deny", "Action": ["read"], "Resource": ["db:${database}"]}],
        )
        assert seeded.is_authorized("alice", "read", "db:sales", "ACME").access is False

    def test_delete_removes_attachments(self, seeded):
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        seeded.attachments.attach(EntityRef.user("alice"), "p1", "ACME")
        seeded.attachments.attach(EntityRef.team("api"), "p1", "ACME")
        seeded.attachments.attach(EntityRef.organization("ACME"), "p1", "ACME")

        seeded.policies.delete_policy("p1", "ACME")

        with pytest.raises(NotFoundError):
            seeded.policies.read_policy("p1", "ACME")
        assert seeded.attachments.list(EntityRef.user("alice"), "ACME") == []
        assert seeded.attachments.list(EntityRef.team("api"), "ACME") == []
        assert seeded.attachments.list(EntityRef.organization("ACME"), "ACME") == []

    def test_delete_other_organization(self, seeded):
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        with pytest.raises(NotFoundError):
            seeded.policies.delete_policy("p1", "GLOBEX")

    def test_list_ordered_by_name(self, seeded):
        seeded.policies.create_policy("ACME", "1", "beta", DOCUMENT, policy_id="b")
        seeded.policies.create_policy("ACME", "1", "Alpha", DOCUMENT, policy_id="a")
        seeded.policies.create_policy("GLOBEX", "1", "Aardvark", DOCUMENT, policy_id="g")
        assert [p.id for p in seeded.policies.list_policies("ACME")] == ["a", "b"]


class TestSharedPolicies:
    """Shared policy management."""

    def test_create_and_read(self, seeded):
        created = seeded.policies.create_shared_policy("1", "Public", DOCUMENT, policy_id="s1")
        assert created.is_shared is True
        assert seeded.policies.read_shared_policy("s1") == created

    def test_tenant_policy_is_not_shared(self, seeded):
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        with pytest.raises(NotFoundError):
            seeded.policies.read_shared_policy("p1")

    def test_shared_policy_not_listed_as_tenant(self, seeded):
        seeded.policies.create_shared_policy("1", "Public", DOCUMENT, policy_id="s1")
        assert seeded.policies.list_policies("ACME") == []
        assert [p.id for p in seeded.policies.list_shared_policies()] == ["s1"]

    def test_update(self, seeded):
        seeded.policies.create_shared_policy("1", "Public", DOCUMENT, policy_id="s1")
        updated = seeded.policies.update_shared_policy("s1", "2", "Public v2", DOCUMENT)
        assert updated.version == "2"

    def test_delete_removes_attachments_everywhere(self, seeded):
        seeded.policies.create_shared_policy("1", "Public", DOCUMENT, policy_id="s1")
        seeded.attachments.attach(EntityRef.user("alice"), "s1", "ACME")
        seeded.attachments.attach(EntityRef.user("dave"), "s1", "GLOBEX")
        seeded.policies.delete_shared_policy("s1")
        assert seeded.attachments.list(EntityRef.user("alice"), "ACME") == []
        assert seeded.attachments.list(EntityRef.user("dave"), "GLOBEX") == []


class TestInstancesAndVariables:
    """Policy instances and variables."""

    def test_list_policy_instances(self, seeded):
        seeded.policies.create_policy("ACME", "1", "Readers", DOCUMENT, policy_id="p1")
        seeded.attachments.attach(EntityRef.user("alice"), "p1", "ACME", variables={"database": "a"})
        seeded.attachments.attach(EntityRef.team("api"), "p1", "ACME", variables={"database": "b"})
        seeded.attachments.attach(EntityRef.organization("ACME"), "p1", "ACME")

        instances = seeded.policies.list_policy_instances("p1", "ACME")
        assert [i.entity for i in instances] == [
            EntityRef.organization("ACME"),
            EntityRef.team("api"),
            EntityRef.user("alice"),
        ]
        assert instances[1].variables == {"database": "b"}

    def test_shared_policy_instances_scoped_to_organization(self, seeded):
        seeded.policies.create_shared_policy("1", "Public", DOCUMENT, policy_id="s1")
        seeded.attachments.attach(EntityRef.user("alice"), "s1", "ACME")
        seeded.attachments.attach(EntityRef.user("dave"), "s1", "GLOBEX")
        instances = seeded.policies.list_policy_instances("s1", "ACME")
        assert [i.entity for i in instances] == [EntityRef.user("alice")]

    def test_list_policy_instances_of_foreign_policy(self, seeded):
        seeded.policies.create_policy("GLOBEX", "1", "Readers", DOCUMENT, policy_id="g1")
        with pytest.raises(NotFoundError):
            seeded.policies.list_policy_instances("g1", "ACME")

    def test_read_policy_variables(self, seeded):
        seeded.policies.create_policy(
            "ACME",
            "1",
            "Vars",
            [
                {"Effect": "Allow", "Action": ["read"], "Resource": ["db:${database}/${table}"]},
                {"Effect": "Deny", "Action": ["write"], "Resource": ["db:${database}"]},
            ],
            policy_id="v1",
        )
        assert seeded.policies.read_policy_variables("v1", "ACME") == ["${database}", "${table}"]

    def test_read_shared_policy_variables(self, seeded):
        seeded.policies.create_shared_policy("1", "Public", DOCUMENT, policy_id="s1")
        assert seeded.policies.read_policy_variables("s1", "GLOBEX") == ["${database}"]
