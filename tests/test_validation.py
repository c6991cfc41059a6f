"""Tests for input validation."""

from __future__ import annotations

import pytest

from warrant.exceptions import ValidationError
from warrant.types import Effect, InstanceAmendment, PolicyRef, Statement
from warrant.validation import (
    parse_amendments,
    parse_policy,
    parse_policy_ref,
    parse_policy_refs,
    parse_statements,
    require_identifier,
)


class TestParseStatements:
    """Test parse_statements()."""

    def test_document_form(self):
        statements = parse_statements(
            {
                "Version": "2016-07-01",
                "Statement": [{"Effect": "Allow", "Action": ["read"], "Resource": ["db:*"]}],
            }
        )
        assert statements == (Statement(Effect.ALLOW, ("read",), ("db:*",)),)

    def test_list_form(self):
        statements = parse_statements(
            [
                {"Effect": "Deny", "Action": ["write"], "Resource": ["db:secret"]},
                {"Effect": "Allow", "Action": ["read"], "Resource": ["db:*"]},
            ]
        )
        assert [s.effect for s in statements] == [Effect.DENY, Effect.ALLOW]

    def test_statement_objects_are_validated(self):
        stmt = Statement(Effect.ALLOW, ("read",), ("db:*",))
        assert parse_statements([stmt]) == (stmt,)

    def test_statement_object_with_empty_actions_rejected(self):
        with pytest.raises(ValidationError):
            parse_statements([Statement(Effect.ALLOW, (), ("x",))])

    def test_statement_object_with_empty_pattern_rejected(self):
        with pytest.raises(ValidationError):
            parse_statements([Statement(Effect.DENY, ("read",), ("",))])

    def test_empty_statement_list_rejected(self):
        with pytest.raises(ValidationError):
            parse_statements({"Statement": []})

    def test_bad_effect_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_statements([{"Effect": "Maybe", "Action": ["read"], "Resource": ["*"]}])
        assert exc_info.value.field_name == "statements"
        assert any("Effect" in e for e in exc_info.value.errors)

    def test_empty_actions_rejected(self):
        with pytest.raises(ValidationError):
            parse_statements([{"Effect": "Allow", "Action": [], "Resource": ["*"]}])

    def test_empty_pattern_rejected(self):
        with pytest.raises(ValidationError):
            parse_statements([{"Effect": "Allow", "Action": [""], "Resource": ["*"]}])

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            parse_statements(
                [{"Effect": "Allow", "Action": ["read"], "Resource": ["*"], "Condition": {}}]
            )

    def test_not_a_document(self):
        with pytest.raises(ValidationError):
            parse_statements("Allow everything")


class TestParsePolicy:
    """Test parse_policy()."""

    def test_valid(self):
        policy_id, version, name, statements = parse_policy(
            "1", "Readers", [{"Effect": "Allow", "Action": ["read"], "Resource": ["*"]}], "p1"
        )
        assert (policy_id, version, name) == ("p1", "1", "Readers")
        assert len(statements) == 1

    def test_missing_name(self):
        with pytest.raises(ValidationError):
            parse_policy("1", "", [{"Effect": "Allow", "Action": ["read"], "Resource": ["*"]}])


class TestParsePolicyRefs:
    """Test attach reference parsing."""

    def test_mapping(self):
        ref = parse_policy_ref({"id": "p1", "variables": {"db": "sales"}})
        assert ref == PolicyRef("p1", {"db": "sales"})

    def test_bare_id(self):
        assert parse_policy_ref("p1") == PolicyRef("p1", {})

    def test_policy_ref(self):
        ref = PolicyRef("p1", {"a": "1"})
        assert parse_policy_ref(ref) == ref

    def test_order_kept(self):
        refs = parse_policy_refs(["b", {"id": "a"}])
        assert [r.policy_id for r in refs] == ["b", "a"]

    def test_empty_id(self):
        with pytest.raises(ValidationError):
            parse_policy_ref({"id": ""})

    def test_non_string_variable(self):
        with pytest.raises(ValidationError):
            parse_policy_ref({"id": "p1", "variables": {"a": ["x"]}})


class TestParseAmendments:
    """Test amendment parsing."""

    def test_mapping(self):
        amendments = parse_amendments([{"instance": 3, "variables": {"a": "2"}}])
        assert amendments == [InstanceAmendment(3, {"a": "2"})]

    def test_with_policy_id(self):
        amendments = parse_amendments([InstanceAmendment(3, {"a": "2"}, policy_id="p1")])
        assert amendments[0].policy_id == "p1"

    def test_missing_instance(self):
        with pytest.raises(ValidationError):
            parse_amendments([{"variables": {}}])

    def test_non_positive_instance(self):
        with pytest.raises(ValidationError):
            parse_amendments([{"instance": 0, "variables": {}}])


class TestRequireIdentifier:
    """Test require_identifier()."""

    def test_valid(self):
        assert require_identifier("user_id", "alice") == "alice"

    @pytest.mark.parametrize("value", ["", None, 42])
    def test_invalid(self, value):
        with pytest.raises(ValidationError) as exc_info:
            require_identifier("user_id", value)
        assert exc_info.value.field_name == "user_id"
        assert "user_id" in str(exc_info.value)
