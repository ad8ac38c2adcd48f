"""
TTL cache tests.

Covers:
    - per-entry expiry driven by an injectable clock
    - prefix eviction clearing a whole key family
    - cache-aside reads never storing a failed computation
    - typed scopes mapping to concrete keys
"""

import pytest

from prodflow.services.cache_service import (
    AllCompletedLists,
    AllDepartmentLists,
    CacheService,
    CompletedList,
    DepartmentList,
    MemoryBackend,
    Stats,
    UserNotifications,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance_ms(self, ms):
        self.now += ms / 1000.0


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def svc(clock):
    return CacheService(backend=MemoryBackend(clock=clock))


class TestGetSet:
    def test_roundtrip_json_value(self, svc):
        svc.set("k", {"a": [1, 2]}, ttl_ms=1000)
        assert svc.get("k") == {"a": [1, 2]}

    def test_miss_returns_none(self, svc):
        assert svc.get("absent") is None

    def test_entry_expires_after_ttl(self, svc, clock):
        svc.set("k", "v", ttl_ms=5000)
        clock.advance_ms(4000)
        assert svc.get("k") == "v"
        clock.advance_ms(1000)
        assert svc.get("k") is None

    def test_non_positive_ttl_rejected(self, svc):
        with pytest.raises(ValueError):
            svc.set("k", "v", ttl_ms=0)

    def test_clear(self, svc):
        svc.set("a", 1)
        svc.set("b", 2)
        svc.clear()
        assert svc.get("a") is None
        assert svc.get("b") is None


class TestInvalidatePattern:
    def test_prefix_removes_whole_family(self, svc):
        svc.set("activities_by_dept_gabarito", [1])
        svc.set("activities_by_dept_impressao", [2])
        svc.set("activity_stats", {"total": 2})

        removed = svc.invalidate_pattern("activities_by_dept_")

        assert removed == 2
        assert svc.get("activities_by_dept_gabarito") is None
        assert svc.get("activities_by_dept_impressao") is None
        assert svc.get("activity_stats") == {"total": 2}

    def test_no_match_returns_zero(self, svc):
        assert svc.invalidate_pattern("nothing_") == 0


class TestCachedQuery:
    def test_computes_once_within_ttl(self, svc, clock):
        calls = []

        def compute():
            calls.append(1)
            return [len(calls)]

        assert svc.cached_query("q", compute, ttl_ms=2000) == [1]
        clock.advance_ms(1500)
        assert svc.cached_query("q", compute, ttl_ms=2000) == [1]
        assert len(calls) == 1

        clock.advance_ms(600)
        assert svc.cached_query("q", compute, ttl_ms=2000) == [2]

    def test_failing_compute_is_not_cached(self, svc):
        def boom():
            raise RuntimeError("db down")

        with pytest.raises(RuntimeError):
            svc.cached_query("q", boom, ttl_ms=2000)
        assert svc.get("q") is None
        assert svc.cached_query("q", lambda: "fresh", ttl_ms=2000) == "fresh"

    def test_empty_list_is_cached(self, svc):
        calls = []

        def compute():
            calls.append(1)
            return []

        svc.cached_query("q", compute)
        svc.cached_query("q", compute)
        assert len(calls) == 1


class TestScopes:
    def test_scope_keys(self):
        assert DepartmentList("gabarito").key == "activities_by_dept_gabarito"
        assert CompletedList("batida").key == "completed_activities_dept_batida"
        assert Stats().key == "activity_stats"
        assert UserNotifications(7).key == "user_notifications_7"

    def test_invalidate_exact_scopes(self, svc):
        svc.set(DepartmentList("gabarito").key, [1])
        svc.set(DepartmentList("impressao").key, [2])
        svc.set(Stats().key, {})

        svc.invalidate(DepartmentList("gabarito"), Stats())

        assert svc.get(DepartmentList("gabarito").key) is None
        assert svc.get(Stats().key) is None
        assert svc.get(DepartmentList("impressao").key) == [2]

    def test_family_scopes_do_not_cross(self, svc):
        svc.set(DepartmentList("gabarito").key, [1])
        svc.set(CompletedList("gabarito").key, [9])

        svc.invalidate(AllDepartmentLists())
        assert svc.get(DepartmentList("gabarito").key) is None
        assert svc.get(CompletedList("gabarito").key) == [9]

        svc.invalidate(AllCompletedLists())
        assert svc.get(CompletedList("gabarito").key) is None

    def test_scopes_are_hashable_values(self):
        assert DepartmentList("a") == DepartmentList("a")
        assert len({UserNotifications(1), UserNotifications(1), UserNotifications(2)}) == 2


class TestBackend:
    def test_memory_url_uses_memory_backend(self):
        svc = CacheService(url="memory://")
        assert svc.backend_type == "memory"
        assert svc.health_check() == {"status": "ok", "backend": "memory"}

    def test_close_flushes_memory_store(self, svc):
        svc.set("k", "v")
        svc.close()
        assert svc.get("k") is None
