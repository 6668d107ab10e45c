"""Tests for query keys, filters and cache policy."""

from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from bond.api import (
    DEFAULT_QUERY_CLIENT_CONFIG,
    QueryKeyFactory,
    create_query_client_config,
    create_query_keys,
    exact_filter,
    predicate_filter,
    query_key,
    retry_delay,
    scope_filter,
)


class TestQueryKey:
    """Tests for ad-hoc keys."""

    def test_builds_tuple(self):
        assert query_key("users", "list", {"page": 1}) == ("users", "list", {"page": 1})

    def test_structural_equality(self):
        assert query_key("pools", {"chain": "0g", "page": 2}) == query_key(
            "pools", {"page": 2, "chain": "0g"}
        )

    def test_supports_scalars(self):
        assert query_key("prices", 16600, True, None) == ("prices", 16600, True, None)


class TestQueryKeyFactory:
    """Tests for scoped key factories."""

    @pytest.fixture
    def user_keys(self) -> QueryKeyFactory:
        return create_query_keys(
            "users",
            {
                "list": lambda filters=None: ["list", filters],
                "detail": lambda user_id: ["detail", user_id],
                "profile": lambda user_id: ("detail", user_id, "profile"),
            },
        )

    def test_detail_key(self):
        keys = create_query_keys("users", {"detail": lambda user_id: [user_id]})

        assert keys.keys.detail("42") == ("users", "42")
        assert keys.all == ("users",)

    def test_builders_are_prefixed(self, user_keys):
        assert user_keys.keys.list() == ("users", "list", None)
        assert user_keys.keys.list({"status": "active"}) == (
            "users",
            "list",
            {"status": "active"},
        )
        assert user_keys.keys.profile("123") == ("users", "detail", "123", "profile")

    def test_keyword_arguments(self, user_keys):
        assert user_keys.keys.detail(user_id="7") == ("users", "detail", "7")

    def test_names(self, user_keys):
        assert user_keys.names == ("list", "detail", "profile")
        assert user_keys.scope == "users"

    def test_unknown_builder(self, user_keys):
        with pytest.raises(AttributeError):
            user_keys.keys.missing("1")

    def test_factory_is_immutable(self, user_keys):
        with pytest.raises(AttributeError):
            user_keys.keys.detail = lambda user_id: ["other"]
        with pytest.raises(AttributeError):
            user_keys._scope = "accounts"

    def test_any_string_is_a_builder_name(self):
        keys = create_query_keys(
            "pools",
            {
                "by-chain": lambda chain: ["by-chain", chain],
                "class": lambda: ["class"],
                "_internal": lambda: ["internal"],
                "for": lambda owner: ["for", owner],
            },
        )

        assert keys.names == ("by-chain", "class", "_internal", "for")
        assert keys.keys["by-chain"]("0g") == ("pools", "by-chain", "0g")
        assert getattr(keys.keys, "class")() == ("pools", "class")
        assert keys.keys._internal() == ("pools", "internal")
        assert keys.keys["for"]("0xabc") == ("pools", "for", "0xabc")

    def test_keys_mapping_access(self, user_keys):
        assert "detail" in user_keys.keys
        assert "missing" not in user_keys.keys
        assert len(user_keys.keys) == 3
        assert list(user_keys.keys) == ["list", "detail", "profile"]
        with pytest.raises(KeyError):
            user_keys.keys["missing"]

    def test_keys_cannot_be_deleted(self, user_keys):
        with pytest.raises(AttributeError):
            del user_keys.keys.detail
        assert user_keys.keys.detail("1") == ("users", "detail", "1")

    def test_builder_must_return_sequence(self):
        keys = create_query_keys("users", {"bad": lambda: "detail"})

        with pytest.raises(TypeError, match="users.bad"):
            keys.keys.bad()

    def test_rejects_invalid_definitions(self):
        with pytest.raises(ValueError):
            create_query_keys("", {})
        with pytest.raises(TypeError):
            create_query_keys("users", {"detail": "not callable"})

    def test_keys_share_scope_prefix(self, user_keys):
        scope = scope_filter("users")

        assert scope.matches(user_keys.keys.detail("1"))
        assert scope.matches(user_keys.all)


class TestInvalidationFilters:
    """Tests for filter descriptors."""

    def test_scope_filter(self):
        f = scope_filter("pools")

        assert f.query_key == ("pools",)
        assert f.exact is False
        assert f.matches(("pools", "detail", "1"))
        assert not f.matches(("positions", "pools"))

    def test_exact_filter(self):
        f = exact_filter(["pools", "detail", "1"])

        assert f.query_key == ("pools", "detail", "1")
        assert f.exact is True
        assert f.matches(("pools", "detail", "1"))
        assert not f.matches(("pools", "detail", "1", "history"))
        assert not f.matches(("pools",))

    def test_predicate_filter(self):
        f = predicate_filter(lambda key: len(key) > 1 and key[1] == "detail")

        assert f.predicate(SimpleNamespace(query_key=["pools", "detail", "1"]))
        assert not f.predicate(SimpleNamespace(query_key=["pools", "list"]))
        assert f.matches(("users", "detail"))

    def test_filters_are_hashable_values(self):
        assert scope_filter("pools") == scope_filter("pools")
        assert hash(exact_filter(("pools", 1))) == hash(exact_filter(("pools", 1)))


class TestCachePolicy:
    """Tests for the default cache policy."""

    def test_defaults(self):
        queries = DEFAULT_QUERY_CLIENT_CONFIG.queries

        assert queries.stale_time == 300
        assert queries.gc_time == 1800
        assert queries.retry == 3
        assert queries.refetch_on_window_focus is True
        assert queries.refetch_on_reconnect is True
        assert queries.refetch_on_mount is True
        assert DEFAULT_QUERY_CLIENT_CONFIG.mutations.retry == 1

    @pytest.mark.parametrize(
        "attempt,expected",
        [(0, 1.0), (1, 2.0), (2, 4.0), (4, 16.0), (5, 30.0), (10, 30.0)],
    )
    def test_retry_delay(self, attempt, expected):
        assert retry_delay(attempt) == expected
        assert DEFAULT_QUERY_CLIENT_CONFIG.queries.retry_delay(attempt) == expected

    def test_override_keeps_other_defaults(self):
        config = create_query_client_config({"queries": {"stale_time": 600}})

        assert config.queries.stale_time == 600
        assert config.queries.gc_time == 1800
        assert config.queries.retry == 3
        assert config.mutations.retry == 1
        assert DEFAULT_QUERY_CLIENT_CONFIG.queries.stale_time == 300

    def test_override_mutations(self):
        config = create_query_client_config({"mutations": {"retry": 0}})

        assert config.mutations.retry == 0
        assert config.queries == DEFAULT_QUERY_CLIENT_CONFIG.queries

    def test_no_overrides(self):
        assert create_query_client_config() == DEFAULT_QUERY_CLIENT_CONFIG

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown query client options"):
            create_query_client_config({"subscriptions": {}})

    def test_unknown_option(self):
        with pytest.raises(ValidationError):
            create_query_client_config({"queries": {"stale": 10}})

    def test_policy_is_frozen(self):
        with pytest.raises(ValidationError):
            DEFAULT_QUERY_CLIENT_CONFIG.queries.retry = 10
