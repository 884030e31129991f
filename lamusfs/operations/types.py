from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ErrorKind


class CopyFileOp(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["copyFile"] = "copyFile"
    src_provider_id: str
    src_path: tuple[str, ...] = ()
    provider_id: str
    path: tuple[str, ...] = ()
    file_name: str


class MkDirOp(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["mkDir"] = "mkDir"
    provider_id: str
    path: tuple[str, ...] = ()
    dir_name: str


class DelFileOp(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["delFile"] = "delFile"
    provider_id: str
    path: tuple[str, ...] = ()
    file_name: str


class RmDirOp(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["rmDir"] = "rmDir"
    provider_id: str
    path: tuple[str, ...] = ()
    file_name: str


Operation = Annotated[
    Union[CopyFileOp, MkDirOp, DelFileOp, RmDirOp], Field(discriminator="op")
]


class StepResult(BaseModel):
    """Outcome of executing a single operation."""

    ok: bool
    operation: Operation
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    file_name: Optional[str] = None  # final name of a copied file


class StepProgress(BaseModel):
    """Yielded by a batch run after each step."""

    index: int
    total: int
    operation: Operation
    result: StepResult


class BatchStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BatchReport(BaseModel):
    total: int
    completed: int = 0
    status: BatchStatus = BatchStatus.PENDING
    failed_step: Optional[int] = None  # index into the plan
    error: Optional[str] = None
