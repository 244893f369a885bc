from __future__ import annotations

from gateway_service.app.completion_cache import CompletionCache, cache_key

from tests.conftest import FakeClock


def test_get_returns_value_until_ttl_elapses(cache: CompletionCache, clock: FakeClock) -> None:
    values = ["default", "root"]
    assert cache.set("vault:policies", values, 60) is values

    clock.advance(59)
    assert cache.get("vault:policies") == ["default", "root"]

    clock.advance(1)
    assert cache.get("vault:policies") is None
    assert cache.stats()["size"] == 0


def test_get_missing_key_returns_none(cache: CompletionCache) -> None:
    assert cache.get("argocd:applications") is None


def test_invalidate_by_prefix(cache: CompletionCache) -> None:
    cache.set("vault:policies", ["a"], 60)
    cache.set("vault:roles", ["b"], 60)
    cache.set("argocd:applications", ["c"], 60)

    assert cache.invalidate("vault:") == 2
    assert cache.get("vault:policies") is None
    assert cache.get("argocd:applications") == ["c"]


def test_stats_reports_entry_age(cache: CompletionCache, clock: FakeClock) -> None:
    cache.set("entra:groups", ["ops"], 30)
    clock.advance(10)

    entry = cache.stats()["entries"][0]  # type: ignore[index]
    assert entry["key"] == "entra:groups"
    assert entry["age_seconds"] == 10
    assert entry["expired"] is False


def test_cache_key_scope_suffix() -> None:
    assert cache_key("kubernetes", "resource-types", "default") == "kubernetes:resource-types:default"
    assert cache_key("vault", "policies", scope="user-1") == "vault:policies@user-1"
