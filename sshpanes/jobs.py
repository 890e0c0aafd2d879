"""Transfer jobs and the events workers send back about them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Union


class TransferKind(Enum):
    """Direction of a transfer."""

    DOWNLOAD = auto()
    UPLOAD = auto()


class JobState(Enum):
    """Lifecycle of a job: ``QUEUED → ACTIVE → COMPLETED_OK | COMPLETED_ERR``."""

    QUEUED = auto()
    ACTIVE = auto()
    COMPLETED_OK = auto()
    COMPLETED_ERR = auto()


@dataclass(frozen=True)
class TransferJob:
    """One requested transfer (a file or a whole folder tree).

    ``id`` is stable for the job's lifetime and correlates the job with the
    events its worker sends.
    """

    id: int
    kind: TransferKind
    file_name: str
    source_path: str
    dest_path: str
    expected_total_bytes: Optional[int] = None
    is_folder: bool = False

    @property
    def local_path(self) -> str:
        """The local side of the transfer, whichever direction it goes."""
        return self.dest_path if self.kind is TransferKind.DOWNLOAD else self.source_path

    @property
    def is_single_download(self) -> bool:
        """True for jobs that count against the download pool bound."""
        return self.kind is TransferKind.DOWNLOAD and not self.is_folder


@dataclass(frozen=True)
class Progress:
    """Partial progress of a multi-file job."""

    job_id: int
    label: str
    files_done: int
    files_total: int
    bytes_done: int
    bytes_total: Optional[int]


@dataclass(frozen=True)
class Completed:
    """Final outcome of a job; sent exactly once per job.

    ``error`` is ``None`` on success, otherwise a human-readable message.
    """

    job_id: int
    file_name: str
    local_path: str
    kind: TransferKind
    is_folder: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def for_job(cls, job: TransferJob, error: Optional[str] = None) -> "Completed":
        return cls(
            job_id=job.id,
            file_name=job.file_name,
            local_path=job.local_path,
            kind=job.kind,
            is_folder=job.is_folder,
            error=error,
        )


ProgressEvent = Union[Progress, Completed]
