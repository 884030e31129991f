"""
Batch operation planner.

Turns a selection of entries into an ordered list of primitive operations.
Copies are planned in pre-order, so every directory is created before
anything is copied into it. Deep deletes are planned bottom-up, children
before the directory that holds them.
"""

from typing import Iterable

from ..errors import PlanningError
from ..registry import ProviderRegistry
from ..types import FileEntry, Location, is_real_entry
from .types import CopyFileOp, DelFileOp, MkDirOp, Operation, RmDirOp


async def _list_source(
    registry: ProviderRegistry, location: Location
) -> list[FileEntry]:
    result = await registry.list_files(location.provider_id, list(location.path))
    if not result.ok:
        raise PlanningError(
            f"Could not list contents of directory {location.address}: {result.error}",
            result.kind,
            location.address,
        )
    return result.files


async def _plan_copy_entry(
    registry: ProviderRegistry,
    source: Location,
    entry: FileEntry,
    target: Location,
    plan: list[Operation],
) -> None:
    if not entry.dir:
        plan.append(
            CopyFileOp(
                src_provider_id=source.provider_id,
                src_path=source.path,
                provider_id=target.provider_id,
                path=target.path,
                file_name=entry.file_name,
            )
        )
        return

    plan.append(
        MkDirOp(
            provider_id=target.provider_id,
            path=target.path,
            dir_name=entry.file_name,
        )
    )

    source_dir = source.child(entry.file_name)
    target_dir = target.child(entry.file_name)
    for child in await _list_source(registry, source_dir):
        await _plan_copy_entry(registry, source_dir, child, target_dir, plan)


async def plan_copy(
    registry: ProviderRegistry,
    source: Location,
    entries: Iterable[FileEntry],
    target: Location,
) -> list[Operation]:
    """
    Plan copying ``entries`` of ``source`` into ``target``, keeping names.

    Synthetic entries (the parent-directory link, virtual entries) are never
    planned. An empty selection gives an empty plan.

    Raises:
        PlanningError: If a source directory can't be listed
    """
    plan: list[Operation] = []
    for entry in entries:
        if not is_real_entry(entry):
            continue
        await _plan_copy_entry(registry, source, entry, target, plan)
    return plan


async def _plan_delete_entry(
    registry: ProviderRegistry,
    location: Location,
    entry: FileEntry,
    recursive: bool,
    plan: list[Operation],
) -> None:
    if not entry.dir:
        plan.append(
            DelFileOp(
                provider_id=location.provider_id,
                path=location.path,
                file_name=entry.file_name,
            )
        )
        return

    if recursive:
        directory = location.child(entry.file_name)
        for child in await _list_source(registry, directory):
            await _plan_delete_entry(registry, directory, child, recursive, plan)

    plan.append(
        RmDirOp(
            provider_id=location.provider_id,
            path=location.path,
            file_name=entry.file_name,
        )
    )


async def plan_delete(
    registry: ProviderRegistry,
    location: Location,
    entries: Iterable[FileEntry],
    recursive: bool = True,
) -> list[Operation]:
    """
    Plan deleting ``entries`` of ``location``.

    With ``recursive`` every directory's contents are expanded into their own
    steps, deepest first. Without it each selected entry is a single step and
    the backend removes directory contents itself.

    Raises:
        PlanningError: If a directory can't be listed
    """
    plan: list[Operation] = []
    for entry in entries:
        if not is_real_entry(entry):
            continue
        await _plan_delete_entry(registry, location, entry, recursive, plan)
    return plan


def describe(operation: Operation) -> str:
    """Progress label for an operation, e.g. ``"Copying File note.txt"``."""
    match operation:
        case CopyFileOp(file_name=name):
            return f"Copying File {name}"
        case DelFileOp(file_name=name):
            return f"Deleting File {name}"
        case MkDirOp(dir_name=name):
            return f"Creating Directory {name}"
        case RmDirOp(file_name=name):
            return f"Removing Directory {name}"
    raise ValueError(f"Unknown operation: {operation!r}")
