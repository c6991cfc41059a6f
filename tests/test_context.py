"""Tests for request contexts and the Warrant facade."""

from __future__ import annotations

import pytest

from warrant import (
    EntityRef,
    RequestContext,
    ValidationError,
    Warrant,
    WarrantConfig,
    get_current_context,
    request_context,
)


class TestRequestContext:
    """Test RequestContext.build()."""

    def test_own_organization(self):
        ctx = RequestContext.build("alice", "ACME")
        assert ctx.organization_id == "ACME"
        assert ctx.is_root is False
        assert ctx.is_impersonating is False

    def test_root_override_honoured(self):
        ctx = RequestContext.build("admin", "ROOT", organization_override="ACME")
        assert ctx.organization_id == "ACME"
        assert ctx.user_organization_id == "ROOT"
        assert ctx.is_impersonating is True

    def test_non_root_override_ignored(self):
        ctx = RequestContext.build("alice", "ACME", organization_override="GLOBEX")
        assert ctx.organization_id == "ACME"
        assert ctx.is_impersonating is False

    def test_custom_root(self):
        ctx = RequestContext.build(
            "admin", "SUPER", organization_override="ACME", root_organization_id="SUPER"
        )
        assert ctx.is_impersonating is True

    def test_to_dict(self):
        ctx = RequestContext.build("admin", "ROOT", organization_override="ACME")
        assert ctx.to_dict() == {
            "user_id": "admin",
            "user_organization_id": "ROOT",
            "organization_id": "ACME",
            "impersonating": True,
        }

    def test_empty_user(self):
        with pytest.raises(ValidationError):
            RequestContext.build("", "ACME")


class TestBoundContext:
    """Test request_context() and get_current_context()."""

    def test_bound_for_block(self):
        ctx = RequestContext.build("alice", "ACME")
        assert get_current_context() is None
        with request_context(ctx) as bound:
            assert bound is ctx
            assert get_current_context() is ctx
        assert get_current_context() is None


class TestWarrantFacade:
    """Test the Warrant facade."""

    @pytest.fixture
    def impersonation(self, seeded, make_policy):
        make_policy("ACME", "acme-read", [("Allow", ["read"], ["*"])])
        make_policy("ROOT", "root-admin", [("Allow", ["admin"], ["*"])])
        seeded.attachments.attach(EntityRef.organization("ACME"), "acme-read", "ACME")
        seeded.attachments.attach(EntityRef.user("admin"), "root-admin", "ROOT")
        return seeded

    def test_context_for_root_user(self, impersonation):
        ctx = impersonation.context_for("admin", organization_override="ACME")
        assert ctx.is_impersonating is True
        assert impersonation.authorize("read", "doc", ctx).access is True
        assert impersonation.authorize("admin", "doc", ctx).access is True

    def test_context_for_regular_user(self, impersonation):
        ctx = impersonation.context_for("dave", organization_override="ACME")
        assert ctx.organization_id == "GLOBEX"
        assert impersonation.authorize("read", "doc", ctx).access is False

    def test_authorize_uses_bound_context(self, impersonation):
        with request_context(impersonation.context_for("alice")):
            assert impersonation.authorize("read", "doc").access is True
            assert impersonation.authorize("admin", "doc").access is False

    def test_authorize_without_context(self, impersonation):
        with pytest.raises(ValidationError):
            impersonation.authorize("read", "doc")

    def test_context_manager_disposes_engine(self):
        with Warrant(WarrantConfig()) as instance:
            instance.create_schema()
            instance.directory.create_organization("ACME", "Acme")
        assert instance.config.database_url == "sqlite://"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WARRANT_ROOT_ORGANIZATION_ID", "SUPER")
        instance = Warrant.from_env()
        try:
            assert instance.config.root_organization_id == "SUPER"
        finally:
            instance.close()
