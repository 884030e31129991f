"""
Batch tree operations: planning and step-by-step execution.
"""

from .executor import BatchRun, PlanExecutor
from .planner import describe, plan_copy, plan_delete
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

__all__ = [
    "BatchReport",
    "BatchRun",
    "BatchStatus",
    "CopyFileOp",
    "DelFileOp",
    "MkDirOp",
    "Operation",
    "PlanExecutor",
    "RmDirOp",
    "StepProgress",
    "StepResult",
    "describe",
    "plan_copy",
    "plan_delete",
]
