"""Tests for step-by-step plan execution."""

import asyncio

import pytest

from lamusfs.errors import ErrorKind, ProviderNotFoundError
from lamusfs.events import LocationChangedEvent
from lamusfs.operations.executor import PlanExecutor
from lamusfs.operations.planner import plan_copy, plan_delete
from lamusfs.operations.types import (
    BatchStatus,
    CopyFileOp,
    DelFileOp,
    MkDirOp,
    RmDirOp,
)
from lamusfs.types import FileEntry, Location


@pytest.fixture
def executor(registry, dispatcher):
    return PlanExecutor(registry, dispatcher)


def three_step_plan():
    return [
        MkDirOp(provider_id="dst", dir_name="one"),
        MkDirOp(provider_id="dst", dir_name="two"),
        MkDirOp(provider_id="dst", dir_name="three"),
    ]


class TestExecute:
    async def test_copy_file(self, executor, source_provider, target_provider):
        source_provider.add_dir([], "docs")
        source_provider.add_file(["docs"], "a.bas", b"10 PRINT")
        target_provider.add_dir([], "backup")

        result = await executor.execute(
            CopyFileOp(
                src_provider_id="src",
                src_path=("docs",),
                provider_id="dst",
                path=("backup",),
                file_name="a.bas",
            )
        )

        assert result.ok
        assert result.file_name == "a.bas"
        assert target_provider.get(["backup"], "a.bas") == b"10 PRINT"

    async def test_copy_missing_source(self, executor, source_provider, target_provider):
        result = await executor.execute(
            CopyFileOp(src_provider_id="src", provider_id="dst", file_name="nope")
        )

        assert result.ok is False
        assert result.kind == ErrorKind.NOT_FOUND
        assert 'Could not read source file "nope"' in result.error
        assert ("write", "nope") not in target_provider.calls

    async def test_delete_operations_unlink(self, executor, source_provider):
        source_provider.add_dir([], "docs")
        source_provider.add_file([], "a.bas", b"")

        assert (await executor.execute(DelFileOp(provider_id="src", file_name="a.bas"))).ok
        assert (await executor.execute(RmDirOp(provider_id="src", file_name="docs"))).ok
        assert source_provider.root == {}

    async def test_unknown_provider_is_a_defect(self, executor):
        with pytest.raises(ProviderNotFoundError):
            await executor.execute(MkDirOp(provider_id="nope", dir_name="x"))

    async def test_location_changed_published(self, executor, dispatcher, target_provider):
        changed = []

        async def on_changed(event: LocationChangedEvent) -> None:
            changed.append(event.location)

        dispatcher.on_location_changed(on_changed)

        await executor.execute(MkDirOp(provider_id="dst", dir_name="x"))
        target_provider.fail("mkdir", "y")
        await executor.execute(MkDirOp(provider_id="dst", dir_name="y"))

        assert changed == [Location(provider_id="dst")]


class TestBatchRun:
    async def test_progress_reported_per_step(self, executor, target_provider):
        plan = three_step_plan()
        batch = executor.start(plan)

        assert batch.report.status == BatchStatus.PENDING

        progress = []
        async for step in batch:
            progress.append((step.index, step.total, step.result.ok))
            # the step has been applied by the time it is reported
            assert target_provider.get([], step.operation.dir_name) == {}

        assert progress == [(0, 3, True), (1, 3, True), (2, 3, True)]
        assert batch.report.status == BatchStatus.COMPLETED
        assert batch.report.completed == 3

    async def test_partial_failure_halts(self, executor, target_provider):
        target_provider.fail("mkdir", "two", error="quota exceeded")

        report = await executor.run(three_step_plan())

        assert target_provider.get([], "one") == {}
        assert target_provider.get([], "three") is None
        assert ("mkdir", "three") not in target_provider.calls
        assert report.status == BatchStatus.FAILED
        assert report.failed_step == 1
        assert report.completed == 1
        assert report.error == (
            "Step 2 of 3 (Creating Directory two) failed after 1 completed: "
            "quota exceeded"
        )

    async def test_failed_step_is_yielded_then_iteration_stops(
        self, executor, target_provider
    ):
        target_provider.fail("mkdir", "two")
        batch = executor.start(three_step_plan())

        steps = [step async for step in batch]

        assert [step.result.ok for step in steps] == [True, False]
        assert steps[1].result.kind == ErrorKind.TRANSPORT
        assert [step async for step in batch] == []

    async def test_empty_plan(self, executor, source_provider, target_provider):
        plan = await plan_copy(
            executor.registry, Location(provider_id="src"), [], Location(provider_id="dst")
        )

        report = await executor.run(plan)

        assert plan == []
        assert report.status == BatchStatus.COMPLETED
        assert report.total == 0
        assert report.completed == 0
        assert source_provider.calls == []
        assert target_provider.calls == []

    async def test_cancellation_between_steps(self, executor, target_provider):
        cancel = asyncio.Event()
        batch = executor.start(three_step_plan(), cancel)

        async for step in batch:
            if step.index == 0:
                cancel.set()

        assert batch.report.status == BatchStatus.CANCELLED
        assert batch.report.completed == 1
        assert target_provider.get([], "two") is None

    async def test_defect_marks_run_failed_and_propagates(self, executor, target_provider):
        plan = [
            MkDirOp(provider_id="dst", dir_name="one"),
            MkDirOp(provider_id="gone", dir_name="two"),
        ]
        batch = executor.start(plan)

        with pytest.raises(ProviderNotFoundError):
            async for _ in batch:
                pass

        assert batch.report.status == BatchStatus.FAILED
        assert batch.report.failed_step == 1
        assert "ProviderNotFoundError" in batch.report.error


async def test_copy_then_delete_tree(executor, source_provider, target_provider):
    source_provider.add_dir([], "D")
    source_provider.add_file(["D"], "f", b"f")
    source_provider.add_dir(["D"], "S")
    source_provider.add_file(["D", "S"], "g", b"g")
    target_provider.add_dir([], "T")

    copy_plan = await plan_copy(
        executor.registry,
        Location(provider_id="src"),
        [FileEntry(file_name="D", dir=True)],
        Location(provider_id="dst", path=["T"]),
    )
    copy_report = await executor.run(copy_plan)

    assert copy_report.status == BatchStatus.COMPLETED
    assert target_provider.root == {"T": {"D": {"f": b"f", "S": {"g": b"g"}}}}

    delete_plan = await plan_delete(
        executor.registry,
        Location(provider_id="dst", path=["T"]),
        [FileEntry(file_name="D", dir=True)],
    )
    delete_report = await executor.run(delete_plan)

    assert delete_report.status == BatchStatus.COMPLETED
    assert delete_report.completed == 4
    assert target_provider.root == {"T": {}}
