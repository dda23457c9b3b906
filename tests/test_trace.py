from loguru import logger

from cochain import (
    Scheduler,
    TaskState,
    TraceOrder,
    chain_trace,
    coroutine,
    dump_trace,
    format_trace,
)


@coroutine
def leaf():
    yield


@coroutine
def root():
    yield leaf()


def _short(label: str) -> str:
    return label.rsplit(".", 1)[-1]


class TestChainTrace:
    def test_outermost_first(self) -> None:
        entries = chain_trace(root())

        assert [_short(e.label) for e in entries] == ["root", "leaf"]
        assert all(e.state is TaskState.SUSPENDED for e in entries)

    def test_innermost_first(self) -> None:
        entries = chain_trace(root(), TraceOrder.INNERMOST_FIRST)

        assert [_short(e.label) for e in entries] == ["leaf", "root"]

    def test_entries_carry_call_site_and_pause_line(self) -> None:
        (root_entry, leaf_entry) = chain_trace(root())

        assert root_entry.filename is not None
        assert root_entry.filename.endswith("test_trace.py")
        assert root_entry.line > 0
        assert root_entry.suspended_at is not None
        assert leaf_entry.suspended_at is not None

    def test_transform_nodes_are_labelled(self) -> None:
        task = leaf().trans(len)

        labels = [e.label for e in chain_trace(task)]

        assert labels[0] == "transform(len)"
        assert labels[1].endswith("leaf")


class TestSchedulerTrace:
    def test_trace_lists_every_pending_root(self, scheduler: Scheduler) -> None:
        scheduler.spawn(root())
        scheduler.spawn(leaf())

        traces = scheduler.trace()

        assert [t.position for t in traces] == [0, 1]
        assert [_short(e.label) for e in traces[0].entries] == ["root", "leaf"]
        assert len(traces[1].entries) == 1

    def test_format_trace_groups_by_root(self, scheduler: Scheduler) -> None:
        scheduler.spawn(root())

        lines = format_trace(scheduler.trace())

        assert lines[0] == "coroutine-0:"
        assert lines[1].startswith("    ")
        assert "root" in lines[1]
        assert "[SUSPENDED]" in lines[2]

    def test_dump_trace_logs_through_loguru(self, scheduler: Scheduler) -> None:
        scheduler.spawn(root())
        captured: list[str] = []
        sink_id = logger.add(lambda message: captured.append(str(message)), level="DEBUG", format="{message}")
        try:
            lines = dump_trace(scheduler, TraceOrder.INNERMOST_FIRST)
        finally:
            logger.remove(sink_id)

        assert lines[0] == "coroutine-0:"
        assert "leaf" in lines[1]
        assert [c.rstrip("\n") for c in captured] == lines

    def test_empty_pool_has_no_trace(self, scheduler: Scheduler) -> None:
        assert scheduler.trace() == []
        assert format_trace(scheduler.trace()) == []
