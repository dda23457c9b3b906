import logging

import pytest

from cochain import (
    ForeignArenaError,
    FrozenDict,
    InvalidYieldError,
    ReentrantRunError,
    RuntimeConfig,
    Scheduler,
    SchedulerStalledError,
    SpawnRejectedError,
    TaskArena,
    coroutine,
    ready,
    use_arena,
    wait,
)


@coroutine
def ticker(pauses, log=None, name="t"):
    for _ in range(pauses):
        yield
        if log is not None:
            log.append(name)


class TestPoolDrain:
    @pytest.mark.parametrize(("roots", "pauses"), [(1, 1), (4, 3), (10, 7)])
    def test_run_takes_exactly_as_many_ticks_as_the_tasks_pause(
        self, scheduler: Scheduler, arena: TaskArena, roots: int, pauses: int
    ) -> None:
        for _ in range(roots):
            scheduler.spawn(ticker(pauses))

        scheduler.run()

        assert scheduler.ticks == pauses
        assert scheduler.pending == 0
        assert arena.live_count == 0

    def test_longest_task_decides_tick_count(self, scheduler: Scheduler) -> None:
        scheduler.spawn(ticker(2))
        scheduler.spawn(ticker(5))
        scheduler.spawn(ticker(1))

        assert scheduler.tick() == 2
        scheduler.run()

        assert scheduler.ticks == 5

    def test_roots_are_driven_in_spawn_order(self, scheduler: Scheduler) -> None:
        log: list[str] = []
        for name in ("a", "b", "c"):
            scheduler.spawn(ticker(2, log, name))

        scheduler.run()

        assert log == ["a", "b", "c", "a", "b", "c"]

    def test_completed_task_is_dropped_at_spawn(self, scheduler: Scheduler, arena: TaskArena) -> None:
        scheduler.spawn(ready(1))

        assert scheduler.pending == 0
        assert arena.live_count == 0
        scheduler.run()
        assert scheduler.ticks == 0

    def test_spawn_moves_ownership(self, scheduler: Scheduler) -> None:
        task = ticker(1)
        scheduler.spawn(task)

        assert not task.is_valid()

    def test_task_spawned_during_a_tick_runs_from_the_next_tick(self, scheduler: Scheduler) -> None:
        log: list[str] = []

        @coroutine
        def child():
            log.append("child:start")
            yield
            log.append("child:end")

        @coroutine
        def spawner():
            yield
            scheduler.spawn(child())
            log.append("spawner:end")

        scheduler.spawn(spawner())
        scheduler.run()

        assert log == ["spawner:end", "child:start", "child:end"]
        assert scheduler.ticks == 3


class TestFaults:
    def test_faulted_root_is_abandoned_and_reported(
        self, scheduler: Scheduler, arena: TaskArena, caplog: pytest.LogCaptureFixture
    ) -> None:
        @coroutine
        def failing():
            yield
            raise RuntimeError("sensor offline")

        @coroutine
        def supervisor():
            yield failing()

        scheduler.spawn(supervisor())
        scheduler.spawn(ticker(2))

        with caplog.at_level(logging.WARNING, logger="cochain.scheduler"):
            scheduler.run()

        assert len(scheduler.faults) == 1
        report = scheduler.faults[0]
        assert report.label.endswith("supervisor")
        assert isinstance(report.error, RuntimeError)
        assert [entry.label.rsplit(".", 1)[-1] for entry in report.trace] == [
            "failing",
            "supervisor",
        ]
        assert "Abandoning root task" in caplog.text
        assert arena.live_count == 0
        assert scheduler.ticks == 2

    def test_task_faulted_before_spawn_is_abandoned_on_first_tick(self, scheduler: Scheduler) -> None:
        @coroutine
        def explode():
            raise ValueError("never started")
            yield

        scheduler.spawn(explode())
        assert scheduler.pending == 1

        scheduler.run()

        assert scheduler.pending == 0
        assert isinstance(scheduler.faults[0].error, ValueError)


class TestContracts:
    def test_run_is_not_reentrant(self, scheduler: Scheduler) -> None:
        @coroutine
        def nested_run():
            yield
            scheduler.run()

        scheduler.spawn(nested_run())

        with pytest.raises(ReentrantRunError):
            scheduler.run()

    def test_foreign_arena_task_is_rejected(self, scheduler: Scheduler) -> None:
        with use_arena(TaskArena()):
            foreign = ticker(1)

        with pytest.raises(ForeignArenaError):
            scheduler.spawn(foreign)

    def test_task_inside_another_chain_is_rejected(self, scheduler: Scheduler) -> None:
        outer = ticker(1)
        inner = ticker(1)
        outer.append(inner)

        with pytest.raises(SpawnRejectedError):
            scheduler.spawn(inner)

    def test_contract_violation_during_a_tick_keeps_the_pool(
        self, scheduler: Scheduler, arena: TaskArena
    ) -> None:
        @coroutine
        def bad():
            yield
            yield 42

        scheduler.spawn(ticker(3))
        scheduler.spawn(bad())
        scheduler.spawn(ticker(3))

        with pytest.raises(InvalidYieldError):
            scheduler.tick()

        assert scheduler.pending == 3
        assert arena.live_count == 3
        assert scheduler.ticks == 0
        assert len(scheduler.trace()) == 3

    def test_pending_excludes_roots_finished_earlier_in_the_tick(self, scheduler: Scheduler) -> None:
        seen: list[int] = []

        @coroutine
        def observer():
            yield
            seen.append(scheduler.pending)

        scheduler.spawn(ticker(1))
        scheduler.spawn(observer())
        scheduler.tick()

        assert seen == [1]

    def test_max_ticks_stops_a_stalled_pool(self, arena: TaskArena) -> None:
        scheduler = Scheduler(arena=arena, config=RuntimeConfig(max_ticks=5))
        scheduler.spawn(wait(lambda: False))

        with pytest.raises(SchedulerStalledError) as excinfo:
            scheduler.run()

        assert excinfo.value.pending == 1
        assert scheduler.ticks == 5


class TestIntrospection:
    def test_stats_snapshot(self, scheduler: Scheduler) -> None:
        scheduler.spawn(ticker(2))
        scheduler.spawn(ticker(1))
        scheduler.tick()

        stats = scheduler.stats()

        assert isinstance(stats, FrozenDict)
        assert stats["ticks"] == 1
        assert stats["spawned"] == 2
        assert stats["completed"] == 1
        assert stats["pending"] == 1
        assert stats["faulted"] == 0
        assert stats["live_slots"] == 1

    def test_default_arena_is_the_current_one(self, arena: TaskArena) -> None:
        assert Scheduler(config=RuntimeConfig()).arena is arena
