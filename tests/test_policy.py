"""Tests for core/policy.py: catalog lookup and allow/deny decisions."""

from __future__ import annotations

import logging

import pytest

from core.policy import (
    DANGEROUS,
    DANGEROUS_OPERATIONS,
    SAFE,
    SAFE_OPERATIONS,
    CommandCatalog,
    CommandPolicy,
    PolicyConfig,
)
from utils.config import Settings


def _catalog(**settings_kwargs) -> CommandCatalog:
    return CommandCatalog(PolicyConfig.from_settings(Settings(**settings_kwargs)))


class TestCommandPolicy:

    @pytest.mark.parametrize("raw", ["", "*", "  *  ", None])
    def test_empty_or_star_allows_all(self, raw):
        policy = CommandPolicy.parse(raw)
        assert policy.allow_all is True
        assert policy.permits("anything") is True
        assert policy.describe() == "*"

    def test_csv_and_newlines(self):
        policy = CommandPolicy.parse("container.exec, proxy.reload\nsystem.prune")
        assert policy.allow_all is False
        assert policy.names == frozenset({"container.exec", "proxy.reload", "system.prune"})
        assert policy.permits("proxy.reload") is True
        assert policy.permits("container.rm") is False
        assert policy.describe() == "container.exec,proxy.reload,system.prune"


class TestCatalog:

    def test_unknown_names_are_denied(self):
        catalog = _catalog()
        for name in ["", "container", "container.destroy", "system.ps.extra", "HEALTHZ"]:
            assert catalog.is_allowed(name) is False

    def test_default_policy_allows_every_catalog_name(self):
        catalog = _catalog()
        assert all(catalog.is_allowed(name) for name in catalog.names())

    def test_disabled_category_denies_regardless_of_allow_list(self):
        catalog = _catalog(enable_dangerous_commands=False, allowed_dangerous_commands="container.exec")
        assert all(not catalog.is_allowed(op.name) for op in DANGEROUS_OPERATIONS)
        assert all(catalog.is_allowed(op.name) for op in SAFE_OPERATIONS)

    def test_deny_list_wins_over_allow_all(self):
        catalog = _catalog(blocked_commands="container.exec,system.ps")
        assert catalog.is_allowed("container.exec") is False
        assert catalog.is_allowed("system.ps") is False
        assert catalog.is_allowed("container.rm") is True
        assert catalog.is_allowed("system.images") is True

    def test_explicit_allow_list_restricts_category(self):
        catalog = _catalog(allowed_safe_commands="healthz,help")
        assert catalog.is_allowed("healthz") is True
        assert catalog.is_allowed("network.status") is False
        # the other category is untouched
        assert catalog.is_allowed("proxy.reload") is True

    def test_names_by_category(self):
        catalog = _catalog()
        assert catalog.names(SAFE) == [op.name for op in SAFE_OPERATIONS]
        assert catalog.names(DANGEROUS) == [op.name for op in DANGEROUS_OPERATIONS]
        assert catalog.get("container.exec").methods == ("POST",)
        assert catalog.get("container.logs").methods == ("GET",)
        assert catalog.get("nope") is None

    def test_mutations_require_post(self):
        catalog = _catalog()
        for name in ["network.ping", "container.start", "container.restart", "proxy.reload", "system.prune"]:
            assert catalog.get(name).methods == ("POST",)

    def test_unknown_blocked_names_are_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="core.policy"):
            _catalog(blocked_commands="container.exec,container.explode")
        assert "container.explode" in caplog.text
        assert "container.exec" not in caplog.text
