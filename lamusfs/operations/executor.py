"""
Batch operation executor.

Executes a plan strictly one step at a time. The caller drives the loop by
iterating a ``BatchRun``, which lets it show progress and stop between
steps. Execution halts on the first failed step; steps already applied are
not rolled back.
"""

import asyncio
from typing import Optional, Sequence

from ..events import EventDispatcher, LocationChangedEvent
from ..logger import logger
from ..registry import ProviderRegistry
from ..types import Location
from .planner import describe
from .types import (
    BatchReport,
    BatchStatus,
    CopyFileOp,
    DelFileOp,
    MkDirOp,
    Operation,
    RmDirOp,
    StepProgress,
    StepResult,
)


class PlanExecutor:
    def __init__(
        self,
        registry: ProviderRegistry,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.registry = registry
        self._dispatcher = dispatcher

    async def _copy_file(self, operation: CopyFileOp) -> StepResult:
        read_result = await self.registry.read(
            operation.src_provider_id, list(operation.src_path), operation.file_name
        )
        if not read_result.ok:
            return StepResult(
                ok=False,
                operation=operation,
                error=f'Could not read source file "{operation.file_name}": {read_result.error}',
                kind=read_result.kind,
            )

        write_result = await self.registry.write(
            operation.provider_id,
            list(operation.path),
            operation.file_name,
            read_result.data,
        )
        if not write_result.ok:
            return StepResult(
                ok=False,
                operation=operation,
                error=f'Could not write file "{operation.file_name}": {write_result.error}',
                kind=write_result.kind,
            )
        return StepResult(ok=True, operation=operation, file_name=write_result.file_name)

    async def execute(self, operation: Operation) -> StepResult:
        """
        Execute one operation against the registry.

        Backend failures come back as a failed ``StepResult``. Defects such
        as an unknown provider identifier propagate.
        """
        match operation:
            case CopyFileOp():
                step = await self._copy_file(operation)
            case MkDirOp():
                result = await self.registry.mkdir(
                    operation.provider_id, list(operation.path), operation.dir_name
                )
                step = StepResult(
                    ok=result.ok,
                    operation=operation,
                    error=None if result.ok else result.error,
                    kind=None if result.ok else result.kind,
                )
            case DelFileOp() | RmDirOp():
                result = await self.registry.unlink(
                    operation.provider_id, list(operation.path), operation.file_name
                )
                step = StepResult(
                    ok=result.ok,
                    operation=operation,
                    error=None if result.ok else result.error,
                    kind=None if result.ok else result.kind,
                )
            case _:
                raise ValueError(f"Unknown operation: {operation!r}")

        if step.ok and self._dispatcher is not None:
            await self._dispatcher.dispatch_location_changed(
                LocationChangedEvent(
                    location=Location(
                        provider_id=operation.provider_id, path=operation.path
                    )
                )
            )
        return step

    def start(
        self,
        plan: Sequence[Operation],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> "BatchRun":
        return BatchRun(self, plan, cancel_event)

    async def run(
        self,
        plan: Sequence[Operation],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchReport:
        """Run a whole plan and return its report."""
        batch = self.start(plan, cancel_event)
        async for _ in batch:
            pass
        return batch.report


class BatchRun:
    """
    One execution of a plan, driven by the caller.

    Each iteration runs exactly one step to completion and yields its
    ``StepProgress``. Iteration ends when the plan is done, a step fails, or
    ``cancel_event`` is set between steps. ``report`` reflects the state so
    far at any time.
    """

    def __init__(
        self,
        executor: PlanExecutor,
        plan: Sequence[Operation],
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self._executor = executor
        self._plan = list(plan)
        self._cancel_event = cancel_event
        self._index = 0
        self.report = BatchReport(total=len(self._plan))

    def __aiter__(self) -> "BatchRun":
        return self

    def _fail(self, index: int, operation: Operation, error: str) -> None:
        report = self.report
        report.status = BatchStatus.FAILED
        report.failed_step = index
        report.error = (
            f"Step {index + 1} of {report.total} ({describe(operation)}) failed "
            f"after {report.completed} completed: {error}"
        )
        logger.warning(f"Batch failed: {report.error}")

    async def __anext__(self) -> StepProgress:
        report = self.report
        if report.status in (
            BatchStatus.COMPLETED,
            BatchStatus.FAILED,
            BatchStatus.CANCELLED,
        ):
            raise StopAsyncIteration

        if self._index >= len(self._plan):
            report.status = BatchStatus.COMPLETED
            logger.info(f"Batch completed, {report.completed} steps")
            raise StopAsyncIteration

        if self._cancel_event is not None and self._cancel_event.is_set():
            report.status = BatchStatus.CANCELLED
            logger.info(
                f"Batch cancelled after {report.completed} of {report.total} steps"
            )
            raise StopAsyncIteration

        report.status = BatchStatus.RUNNING
        index = self._index
        operation = self._plan[index]
        self._index += 1

        try:
            result = await self._executor.execute(operation)
        except Exception as e:
            self._fail(index, operation, f"{type(e).__name__}: {e}")
            raise

        if result.ok:
            report.completed += 1
        else:
            self._fail(index, operation, result.error or "unknown error")

        return StepProgress(
            index=index, total=report.total, operation=operation, result=result
        )
