"""Progress aggregation for background transfers.

Workers never touch UI state.  They put :class:`~sshpanes.jobs.Progress` and
:class:`~sshpanes.jobs.Completed` events on a queue; once per UI tick the
:class:`ProgressAggregator` drains that queue on the UI thread and folds the
events into the renderable state below.  Nothing else mutates it, so no
locks are needed.
"""

from __future__ import annotations

import logging
import os
import queue
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from sshpanes.jobs import Completed, Progress, ProgressEvent, TransferJob, TransferKind

logger = logging.getLogger(__name__)

BAR_FILLED = "▓"
BAR_EMPTY = "░"


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def percent(done: int, total: Optional[int]) -> Optional[int]:
    """Whole-number percentage clamped to ``[0, 100]``.

    ``None`` when *total* is unknown or zero (indeterminate progress).
    """
    if not total or total <= 0:
        return None
    done = max(0, min(done, total))
    return done * 100 // total


def render_bar(done: int, total: Optional[int], width: int) -> str:
    """``"42% ▓▓▓▓░░░░░░"`` or ``""`` when progress is indeterminate."""
    pct = percent(done, total)
    if pct is None:
        return ""
    width = max(0, width)
    filled = min(width, pct * width // 100)
    return f"{pct}% {BAR_FILLED * filled}{BAR_EMPTY * (width - filled)}"


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass
class ActiveTransfer:
    """A job a worker is currently executing."""

    job: TransferJob
    bytes_done: int = 0
    started_at: float = field(default_factory=time.monotonic)

    @property
    def speed_bps(self) -> float:
        """Average speed in bytes/s since the job started."""
        elapsed = time.monotonic() - self.started_at
        if elapsed <= 0 or self.bytes_done <= 0:
            return 0.0
        return self.bytes_done / elapsed

    @property
    def eta_seconds(self) -> float | None:
        """Estimated seconds remaining, or None if speed or size is unknown."""
        speed = self.speed_bps
        total = self.job.expected_total_bytes
        if speed <= 0 or not total:
            return None
        return max(0, total - self.bytes_done) / speed


@dataclass
class ProgressView:
    """Latest reported progress of a multi-file job."""

    label: str
    files_done: int = 0
    files_total: int = 0
    bytes_done: int = 0
    bytes_total: Optional[int] = None

    @property
    def percent(self) -> Optional[int]:
        return percent(self.bytes_done, self.bytes_total)


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class ProgressAggregator:
    """Single consumer of the worker event queue.

    Args:
        events: The queue every worker puts its events on.
        on_refresh: Called with the :class:`TransferKind` of each completed
            job so the destination panel can re-list.
        on_status: Called with the one-line status message of each completion.
    """

    def __init__(
        self,
        events: "queue.Queue[ProgressEvent]",
        on_refresh: Callable[[TransferKind], None] | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        self._events = events
        self.on_refresh = on_refresh
        self.on_status = on_status
        self.active: dict[int, ActiveTransfer] = {}
        self.views: dict[int, ProgressView] = {}
        self.last_message: str | None = None

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track(self, job: TransferJob) -> ActiveTransfer:
        """Register *job* as active; called when its worker is launched."""
        transfer = ActiveTransfer(job)
        self.active[job.id] = transfer
        return transfer

    def active_download_count(self) -> int:
        """Active jobs that count against the download pool bound."""
        return sum(1 for t in self.active.values() if t.job.is_single_download)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def drain(self) -> list[Completed]:
        """Fold every pending event into the state without blocking.

        Returns the :class:`Completed` events handled during this call.
        """
        completed: list[Completed] = []
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            if isinstance(event, Progress):
                self._apply_progress(event)
            elif isinstance(event, Completed):
                self._apply_completed(event)
                completed.append(event)
            else:
                logger.warning("Ignoring unknown event %r", event)
        return completed

    def sample_sizes(self) -> None:
        """Approximate single-download progress from the file size on disk."""
        for transfer in self.active.values():
            if not transfer.job.is_single_download:
                continue
            try:
                transfer.bytes_done = os.path.getsize(transfer.job.dest_path)
            except OSError:
                pass  # Not created yet

    def _apply_progress(self, event: Progress) -> None:
        view = self.views.get(event.job_id)
        if view is None:
            view = self.views[event.job_id] = ProgressView(label=event.label)
        view.label = event.label
        view.files_done = event.files_done
        view.files_total = event.files_total
        view.bytes_done = event.bytes_done
        view.bytes_total = event.bytes_total
        transfer = self.active.get(event.job_id)
        if transfer is not None:
            transfer.bytes_done = event.bytes_done

    def _apply_completed(self, event: Completed) -> None:
        self.active.pop(event.job_id, None)
        self.views.pop(event.job_id, None)

        verb = "Downloaded" if event.kind is TransferKind.DOWNLOAD else "Uploaded"
        noun = "Download" if event.kind is TransferKind.DOWNLOAD else "Upload"
        if event.ok:
            message = f"{verb} {event.file_name} ✓"
            logger.info("Job %d finished: %s", event.job_id, message)
        else:
            message = f"{noun} error for {event.file_name}: {event.error}"
            logger.warning("Job %d failed: %s", event.job_id, event.error)
        self.last_message = message

        if self.on_refresh:
            try:
                self.on_refresh(event.kind)
            except Exception:
                logger.exception("Exception in on_refresh callback")
        if self.on_status:
            try:
                self.on_status(message)
            except Exception:
                logger.exception("Exception in on_status callback")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def current(self) -> ActiveTransfer | None:
        """The most recently started active transfer, if any."""
        if not self.active:
            return None
        return next(reversed(self.active.values()))

    def current_fraction(self) -> float | None:
        """Progress of :meth:`current` as ``0.0``–``1.0``; None if unknown."""
        transfer = self.current()
        if transfer is None:
            return None
        done, total = self._bytes_of(transfer)
        pct = percent(done, total)
        return None if pct is None else pct / 100

    def _bytes_of(self, transfer: ActiveTransfer) -> tuple[int, Optional[int]]:
        view = self.views.get(transfer.job.id)
        if view is not None:
            return view.bytes_done, view.bytes_total
        return transfer.bytes_done, transfer.job.expected_total_bytes

    def status_line(self, queued: int = 0, bar_width: int = 20) -> str:
        """One-line summary of the most recently started transfer.

        Empty when nothing is running.
        """
        transfer = self.current()
        if transfer is None:
            return ""
        job = transfer.job
        verb = "Downloading" if job.kind is TransferKind.DOWNLOAD else "Uploading"
        parts = [f"{verb} {job.file_name}"]

        view = self.views.get(job.id)
        if view is not None and view.files_total:
            parts.append(f"{view.files_done}/{view.files_total} files")
        done, total = self._bytes_of(transfer)
        bar = render_bar(done, total, bar_width)
        if bar:
            parts.append(bar)

        others = len(self.active) - 1
        if others > 0:
            parts.append(f"(+{others} running)")
        if queued > 0:
            parts.append(f"({queued} queued)")
        return " ".join(parts)
