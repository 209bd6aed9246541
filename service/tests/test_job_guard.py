"""
Tests for deduplication and per-user serialization.
"""

import asyncio

from shirokuma.agents.schemas import BirthDate, DiagnosisRequest, DiagnosisType, PartnerInfo
from shirokuma.services.job_guard import (
    InMemoryRecentJobStore,
    UserLockRegistry,
    make_job_key,
    sweep_expired,
)


def make_request(**overrides) -> DiagnosisRequest:
    fields = {
        "diagnosis_type": DiagnosisType.FREE_TOTAL,
        "birth_date": BirthDate(year=1996, month=4, day=24),
        "mbti": "ENFP",
    }
    fields.update(overrides)
    return DiagnosisRequest(**fields)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestJobKey:

    def test_composite_key(self):
        assert make_job_key("U1", make_request()) == "U1:free_total:1996-04-24:ENFP"

    def test_differs_by_type_and_user(self):
        base = make_job_key("U1", make_request())
        assert make_job_key("U2", make_request()) != base
        assert make_job_key("U1", make_request(diagnosis_type=DiagnosisType.SELF_PREMIUM)) != base

    def test_partner_is_part_of_key(self):
        partner = PartnerInfo(birth_date=BirthDate(year=1995, month=1, day=3), mbti="ISTJ")
        key = make_job_key("U1", make_request(diagnosis_type=DiagnosisType.COMPATIBILITY, partner=partner))
        assert key.endswith(":1995-01-03:ISTJ")


class TestSweepExpired:

    def test_keeps_only_fresh_entries(self):
        entries = {"old": 0.0, "edge": 10.0, "fresh": 50.0}
        assert sweep_expired(entries, now=130.0, ttl=120.0) == {"fresh": 50.0}

    def test_does_not_mutate_input(self):
        entries = {"old": 0.0}
        sweep_expired(entries, now=500.0, ttl=120.0)
        assert entries == {"old": 0.0}


class TestRecentJobStore:

    def test_duplicate_within_window(self):
        clock = FakeClock(1000.0)
        store = InMemoryRecentJobStore(ttl_seconds=120, clock=clock)
        assert store.seen_recently("k") is False
        clock.now = 1030.0
        assert store.seen_recently("k") is True

    def test_window_is_measured_from_first_sighting(self):
        clock = FakeClock(1000.0)
        store = InMemoryRecentJobStore(ttl_seconds=120, clock=clock)
        store.seen_recently("k")
        clock.now = 1100.0
        assert store.seen_recently("k") is True
        clock.now = 1121.0
        assert store.seen_recently("k") is False

    def test_forget_accepts_the_key_again(self):
        store = InMemoryRecentJobStore(ttl_seconds=120, clock=FakeClock(1000.0))
        store.seen_recently("k")
        store.forget("k")
        assert store.seen_recently("k") is False
        store.forget("missing")

    def test_expired_entries_are_swept(self):
        clock = FakeClock(0.0)
        store = InMemoryRecentJobStore(ttl_seconds=120, clock=clock)
        for i in range(10):
            store.seen_recently(f"k{i}")
        clock.now = 500.0
        store.seen_recently("new")
        assert len(store) == 1


class TestUserLockRegistry:

    def test_same_user_runs_in_receipt_order(self):
        registry = UserLockRegistry()
        log: list[str] = []

        def job(name: str, delay: float):
            async def run():
                log.append(f"start {name}")
                await asyncio.sleep(delay)
                log.append(f"end {name}")
                return name
            return run

        async def main():
            first = asyncio.create_task(registry.run("U1", job("a", 0.05)))
            second = asyncio.create_task(registry.run("U1", job("b", 0)))
            return await asyncio.gather(first, second)

        assert asyncio.run(main()) == ["a", "b"]
        assert log == ["start a", "end a", "start b", "end b"]
        assert len(registry) == 0

    def test_different_users_run_concurrently(self):
        registry = UserLockRegistry()
        log: list[str] = []

        def job(name: str, delay: float):
            async def run():
                log.append(f"start {name}")
                await asyncio.sleep(delay)
                log.append(f"end {name}")
            return run

        async def main():
            await asyncio.gather(
                registry.run("U1", job("a", 0.05)),
                registry.run("U2", job("b", 0)),
            )

        asyncio.run(main())
        assert log.index("start b") < log.index("end a")

    def test_failed_job_releases_next(self):
        registry = UserLockRegistry()

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            return "ok"

        async def main():
            first = asyncio.create_task(registry.run("U1", boom))
            second = asyncio.create_task(registry.run("U1", ok))
            return await asyncio.gather(first, second, return_exceptions=True)

        first, second = asyncio.run(main())
        assert isinstance(first, RuntimeError)
        assert second == "ok"
        assert registry.is_busy("U1") is False

    def test_cancelled_waiter_keeps_order(self):
        registry = UserLockRegistry()
        log: list[str] = []

        def job(name: str, delay: float):
            async def run():
                log.append(f"start {name}")
                await asyncio.sleep(delay)
                log.append(f"end {name}")
                return name
            return run

        async def main():
            first = asyncio.create_task(registry.run("U1", job("a", 0.1)))
            middle = asyncio.create_task(registry.run("U1", job("b", 0)))
            last = asyncio.create_task(registry.run("U1", job("c", 0)))
            await asyncio.sleep(0.01)
            middle.cancel()
            return await asyncio.gather(first, middle, last, return_exceptions=True)

        first, middle, last = asyncio.run(main())
        assert first == "a"
        assert isinstance(middle, asyncio.CancelledError)
        assert last == "c"
        assert log == ["start a", "end a", "start c", "end c"]
        assert len(registry) == 0
