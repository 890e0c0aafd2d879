"""Background transfer engine for SSHPanes.

Every transfer runs in its own daemon thread that blocks on the transport
and reports back only through the shared event queue:

- Single-file downloads wait in a FIFO :class:`DownloadQueue`; the
  :class:`WorkerPool` keeps at most ``max_parallel_downloads`` of them active
  and promotes the oldest queued job whenever a slot frees up.
- A folder download is one job: its worker walks the remote tree, then
  copies the files one after another, sending a ``Progress`` after each.
  It does not count against the download bound.
- Uploads (file or folder) start immediately, without queueing or a bound.

There is no cancellation and no retry: an active job runs to success or to
a single ``Completed`` carrying the error.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Optional

from sshpanes.jobs import (
    Completed,
    JobState,
    Progress,
    ProgressEvent,
    TransferJob,
    TransferKind,
)
from sshpanes.listing import probe_remote_size, walk_local, walk_remote
from sshpanes.progress import ProgressAggregator
from sshpanes.transport import Transport, TransportError
from sshpanes.utils.path_helpers import (
    join_remote_path,
    parent_remote_path,
    remote_basename,
    unique_local_path,
)

logger = logging.getLogger(__name__)

MAX_PARALLEL_DOWNLOADS = 3
# Finished jobs whose state_of() result is kept.
FINISHED_HISTORY = 1000


# ---------------------------------------------------------------------------
# Workers (run on background threads)
# ---------------------------------------------------------------------------


def _run_job(
    job: TransferJob,
    events: queue.Queue[ProgressEvent],
    body: Callable[[], None],
) -> None:
    """Run *body* and report exactly one ``Completed`` for *job*."""
    error: Optional[str] = None
    try:
        body()
    except Exception as exc:
        if not isinstance(exc, (OSError, TransportError)):
            logger.exception("Unexpected failure in job %d", job.id)
        error = str(exc) or type(exc).__name__
    events.put(Completed.for_job(job, error))


def download_file(
    transport: Transport, job: TransferJob, events: queue.Queue[ProgressEvent]
) -> None:
    """Copy one remote file to its local destination."""
    _run_job(job, events, lambda: transport.get(job.source_path, job.dest_path))


def download_folder(
    transport: Transport, job: TransferJob, events: queue.Queue[ProgressEvent]
) -> None:
    """Copy a remote directory tree, one file at a time."""

    def body() -> None:
        files = walk_remote(transport, job.source_path)
        total_bytes = sum(f.size or 0 for f in files)
        dest_root = Path(job.dest_path)
        dest_root.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Folder download %s: %d files, %d bytes", job.source_path, len(files), total_bytes
        )

        files_done = 0
        bytes_done = 0
        events.put(Progress(job.id, job.file_name, 0, len(files), 0, total_bytes))
        for remote_file in files:
            local = dest_root.joinpath(*remote_file.relative_path.split("/"))
            local.parent.mkdir(parents=True, exist_ok=True)
            transport.get(remote_file.remote_path, local)
            files_done += 1
            bytes_done += remote_file.size or 0
            events.put(
                Progress(job.id, job.file_name, files_done, len(files), bytes_done, total_bytes)
            )

    _run_job(job, events, body)


def upload_file(
    transport: Transport, job: TransferJob, events: queue.Queue[ProgressEvent]
) -> None:
    """Copy one local file into its remote directory, creating it if needed."""

    def body() -> None:
        transport.mkdir_parents(parent_remote_path(job.dest_path))
        transport.put(job.source_path, job.dest_path)

    _run_job(job, events, body)


def upload_folder(
    transport: Transport, job: TransferJob, events: queue.Queue[ProgressEvent]
) -> None:
    """Copy a local directory tree to the remote host, one file at a time.

    A directory that cannot be created aborts the remaining files.
    """

    def body() -> None:
        directories, files = walk_local(job.source_path)
        sizes = [_local_size(path) for path, _ in files]
        total_bytes = sum(sizes)

        transport.mkdir_parents(job.dest_path)
        for rel_dir in directories:
            transport.mkdir_parents(join_remote_path(job.dest_path, rel_dir))

        files_done = 0
        bytes_done = 0
        events.put(Progress(job.id, job.file_name, 0, len(files), 0, total_bytes))
        for (path, rel), size in zip(files, sizes):
            transport.put(path, join_remote_path(job.dest_path, rel))
            files_done += 1
            bytes_done += size
            events.put(
                Progress(job.id, job.file_name, files_done, len(files), bytes_done, total_bytes)
            )

    _run_job(job, events, body)


def _local_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


def worker_for(
    job: TransferJob,
) -> Callable[[Transport, TransferJob, queue.Queue[ProgressEvent]], None]:
    """The worker function that executes *job*."""
    if job.kind is TransferKind.DOWNLOAD:
        return download_folder if job.is_folder else download_file
    return upload_folder if job.is_folder else upload_file


# ---------------------------------------------------------------------------
# Queue and pool
# ---------------------------------------------------------------------------


class DownloadQueue:
    """FIFO of single-file download jobs waiting for a pool slot.

    With *maxsize* > 0, :meth:`push` raises ``queue.Full`` once that many
    jobs are waiting.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.maxsize = maxsize
        self._jobs: deque[TransferJob] = deque()

    def push(self, job: TransferJob) -> None:
        if self.maxsize > 0 and len(self._jobs) >= self.maxsize:
            raise queue.Full(f"download queue is full ({self.maxsize} waiting)")
        self._jobs.append(job)

    def pop(self) -> TransferJob | None:
        return self._jobs.popleft() if self._jobs else None

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self):
        return iter(list(self._jobs))


class WorkerPool:
    """Launches one daemon thread per job.

    Only single-file downloads are bounded, via :meth:`promote`; folder
    downloads and uploads go straight to :meth:`launch`.
    """

    def __init__(
        self,
        transport: Transport,
        events: queue.Queue[ProgressEvent],
        max_parallel_downloads: int = MAX_PARALLEL_DOWNLOADS,
    ) -> None:
        if max_parallel_downloads < 1:
            raise ValueError("max_parallel_downloads must be at least 1")
        self._transport = transport
        self._events = events
        self.max_parallel_downloads = max_parallel_downloads

    def launch(self, job: TransferJob) -> threading.Thread:
        """Start *job*'s worker thread."""
        worker = worker_for(job)
        thread = threading.Thread(
            target=worker,
            args=(self._transport, job, self._events),
            name=f"transfer-{job.id}",
            daemon=True,
        )
        thread.start()
        logger.info(
            "Started %s job %d: %s → %s", job.kind.name.lower(), job.id, job.source_path, job.dest_path
        )
        return thread

    def promote(self, pending: DownloadQueue, active_count: int) -> list[TransferJob]:
        """Launch queued downloads in FIFO order while a slot is free."""
        started: list[TransferJob] = []
        while active_count + len(started) < self.max_parallel_downloads:
            job = pending.pop()
            if job is None:
                break
            self.launch(job)
            started.append(job)
        return started


# ---------------------------------------------------------------------------
# TransferManager
# ---------------------------------------------------------------------------


class TransferManager:
    """UI-thread façade over the queue, the pool and the aggregator.

    Every method must be called from the UI thread; workers only ever see
    their job and the event queue.
    """

    def __init__(
        self,
        transport: Transport,
        max_parallel_downloads: int = MAX_PARALLEL_DOWNLOADS,
        max_queued: int = 0,
        on_refresh: Callable[[TransferKind], None] | None = None,
        on_status: Callable[[str], None] | None = None,
        history_size: int = FINISHED_HISTORY,
    ) -> None:
        self._transport = transport
        self.events: queue.Queue[ProgressEvent] = queue.Queue()
        self.pending = DownloadQueue(max_queued)
        self.pool = WorkerPool(transport, self.events, max_parallel_downloads)
        self.aggregator = ProgressAggregator(
            self.events, on_refresh=on_refresh, on_status=on_status
        )
        self._next_id = 1
        self._states: dict[int, JobState] = {}
        # Finished job ids, oldest first; only the newest history_size keep a state.
        self._finished: deque[int] = deque()
        self.history_size = history_size
        # Local destinations claimed by downloads that have not completed yet.
        self._reserved: set[str] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def queued_count(self) -> int:
        return len(self.pending)

    @property
    def active_download_count(self) -> int:
        return self.aggregator.active_download_count()

    @property
    def active_count(self) -> int:
        return len(self.aggregator.active)

    def state_of(self, job_id: int) -> JobState | None:
        return self._states.get(job_id)

    def is_idle(self) -> bool:
        return not self.aggregator.active and not self.pending

    def status_line(self, bar_width: int = 20) -> str:
        return self.aggregator.status_line(self.queued_count, bar_width)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _new_job(self, **kwargs) -> TransferJob:
        job = TransferJob(id=self._next_id, **kwargs)
        self._next_id += 1
        return job

    def _reserve_path(self, local_dir: str | os.PathLike[str], name: str) -> str:
        path = str(unique_local_path(local_dir, name, taken=self._reserved))
        self._reserved.add(path)
        return path

    def submit_download(
        self,
        remote_path: str,
        local_dir: str | os.PathLike[str],
        expected_size: Optional[int] = None,
    ) -> TransferJob:
        """Queue a single-file download into *local_dir*.

        The destination name never overwrites an existing local file.  When
        *expected_size* is not given the remote size is probed now; an
        unknown size only makes the progress bar indeterminate.

        Raises:
            queue.Full: The download queue is at capacity.
        """
        name = remote_basename(remote_path)
        if expected_size is None:
            expected_size = probe_remote_size(self._transport, remote_path)
        job = self._new_job(
            kind=TransferKind.DOWNLOAD,
            file_name=name,
            source_path=remote_path,
            dest_path=self._reserve_path(local_dir, name),
            expected_total_bytes=expected_size,
        )
        try:
            self.pending.push(job)
        except queue.Full:
            self._reserved.discard(job.dest_path)
            raise
        self._states[job.id] = JobState.QUEUED
        logger.info("Queued download %d: %s (%s bytes)", job.id, remote_path, expected_size)
        self._promote()
        return job

    def submit_folder_download(
        self, remote_dir: str, local_dir: str | os.PathLike[str]
    ) -> TransferJob:
        """Start downloading the remote directory tree *remote_dir*."""
        name = remote_basename(remote_dir)
        job = self._new_job(
            kind=TransferKind.DOWNLOAD,
            file_name=name,
            source_path=remote_dir,
            dest_path=self._reserve_path(local_dir, name),
            is_folder=True,
        )
        self._start(job)
        return job

    def submit_upload(self, local_path: str | os.PathLike[str], remote_dir: str) -> TransferJob:
        """Start uploading a local file or directory into *remote_dir*."""
        local = Path(local_path)
        is_folder = local.is_dir()
        job = self._new_job(
            kind=TransferKind.UPLOAD,
            file_name=local.name,
            source_path=str(local),
            dest_path=join_remote_path(remote_dir, local.name),
            expected_total_bytes=None if is_folder else _local_size(local),
            is_folder=is_folder,
        )
        self._start(job)
        return job

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> list[Completed]:
        """Drain worker events, sample progress, promote queued downloads."""
        completed = self.aggregator.drain()
        for event in completed:
            self._states[event.job_id] = (
                JobState.COMPLETED_OK if event.ok else JobState.COMPLETED_ERR
            )
            self._finished.append(event.job_id)
            if event.kind is TransferKind.DOWNLOAD:
                self._reserved.discard(event.local_path)
        while len(self._finished) > self.history_size:
            self._states.pop(self._finished.popleft(), None)
        self.aggregator.sample_sizes()
        self._promote()
        return completed

    def _start(self, job: TransferJob) -> None:
        self.aggregator.track(job)
        self._states[job.id] = JobState.ACTIVE
        self.pool.launch(job)

    def _promote(self) -> None:
        started = self.pool.promote(self.pending, self.active_download_count)
        for job in started:
            self.aggregator.track(job)
            self._states[job.id] = JobState.ACTIVE
