"""
Payout sync metrics.

Tracks each sync run (firms or traders) in memory: counts, latency,
errors and success rate over a window.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncStatus(str, Enum):
    """Status of a sync run."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some targets failed
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class SyncRunMetrics:
    """Metrics for a single sync run."""

    run_id: str
    kind: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: SyncStatus = SyncStatus.SUCCESS

    targets: int = 0
    targets_failed: int = 0
    payouts_upserted: int = 0
    payouts_deleted: int = 0

    duration_seconds: float = 0.0

    errors: List[str] = field(default_factory=list)
    error_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["ended_at"] = self.ended_at.isoformat() if self.ended_at else None
        data["status"] = self.status.value
        return data


@dataclass
class AggregateMetrics:
    """Aggregated metrics across sync runs."""

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    partial_runs: int = 0
    skipped_runs: int = 0

    total_payouts: int = 0
    total_deleted: int = 0
    total_errors: int = 0

    avg_duration_seconds: float = 0.0
    avg_payouts_per_run: float = 0.0

    last_run: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ["last_run", "last_success", "last_failure"]:
            if data[key]:
                data[key] = data[key].isoformat()
        return data


class SyncMetrics:
    """
    In-memory metrics tracker for payout sync runs.

    Keeps the current run per kind and a bounded history.
    """

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self._current: Dict[str, SyncRunMetrics] = {}
        self._history: List[SyncRunMetrics] = []
        self._run_counter = 0

    def start_run(self, kind: str, targets: int = 0) -> str:
        """
        Start tracking a new run.

        Args:
            kind: 'firms' or 'traders'
            targets: Number of firms or wallets in the run

        Returns:
            Run ID
        """
        self._run_counter += 1
        now = datetime.now(timezone.utc)
        run_id = f"sync-{kind}-{now.strftime('%Y%m%d-%H%M%S')}-{self._run_counter}"
        self._current[kind] = SyncRunMetrics(
            run_id=run_id, kind=kind, started_at=now, targets=targets
        )
        return run_id

    def end_run(self, kind: str, status: Optional[SyncStatus] = None) -> Optional[SyncRunMetrics]:
        """
        Finish the current run of ``kind``.

        Without an explicit status it is derived from the failed targets.
        """
        run = self._current.pop(kind, None)
        if run is None:
            return None

        run.ended_at = datetime.now(timezone.utc)
        run.duration_seconds = (run.ended_at - run.started_at).total_seconds()
        if status is not None:
            run.status = status
        elif run.targets and run.targets_failed >= run.targets:
            run.status = SyncStatus.FAILED
        elif run.targets_failed:
            run.status = SyncStatus.PARTIAL
        else:
            run.status = SyncStatus.SUCCESS

        self._history.append(run)
        if len(self._history) > self.history_size:
            self._history = self._history[-self.history_size :]
        return run

    def record_target(self, kind: str, upserted: int, error: Optional[str] = None):
        """Record the outcome for one firm or wallet."""
        run = self._current.get(kind)
        if run is None:
            return
        run.payouts_upserted += upserted
        if error:
            run.targets_failed += 1
            run.errors.append(error)
            run.error_count += 1

    def record_cleanup(self, kind: str, deleted: int):
        run = self._current.get(kind)
        if run is not None:
            run.payouts_deleted += deleted

    def record_error(self, kind: str, error: str):
        run = self._current.get(kind)
        if run is not None:
            run.errors.append(error)
            run.error_count += 1

    def get_current_run(self, kind: str) -> Optional[SyncRunMetrics]:
        return self._current.get(kind)

    def get_last_run(self, kind: Optional[str] = None) -> Optional[SyncRunMetrics]:
        """Most recent completed run, optionally of one kind."""
        for run in reversed(self._history):
            if kind is None or run.kind == kind:
                return run
        return None

    def get_history(self, limit: Optional[int] = None) -> List[SyncRunMetrics]:
        """Completed runs, newest first."""
        history = list(reversed(self._history))
        if limit:
            history = history[:limit]
        return history

    def get_aggregate_metrics(
        self, hours: Optional[int] = None, kind: Optional[str] = None
    ) -> AggregateMetrics:
        """
        Aggregate metrics across recent runs.

        Args:
            hours: Only include runs from the last N hours (None = all history)
            kind: Only include runs of this kind
        """
        runs = [r for r in self._history if kind is None or r.kind == kind]
        if hours:
            cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
            runs = [r for r in runs if r.started_at >= cutoff]

        if not runs:
            return AggregateMetrics()

        metrics = AggregateMetrics(total_runs=len(runs))
        for run in runs:
            if run.status == SyncStatus.SUCCESS:
                metrics.successful_runs += 1
            elif run.status == SyncStatus.FAILED:
                metrics.failed_runs += 1
            elif run.status == SyncStatus.PARTIAL:
                metrics.partial_runs += 1
            elif run.status == SyncStatus.SKIPPED:
                metrics.skipped_runs += 1

        metrics.total_payouts = sum(r.payouts_upserted for r in runs)
        metrics.total_deleted = sum(r.payouts_deleted for r in runs)
        metrics.total_errors = sum(r.error_count for r in runs)
        metrics.avg_duration_seconds = sum(r.duration_seconds for r in runs) / len(runs)
        metrics.avg_payouts_per_run = metrics.total_payouts / len(runs)
        metrics.last_run = runs[-1].started_at

        for run in reversed(runs):
            if run.status == SyncStatus.SUCCESS and not metrics.last_success:
                metrics.last_success = run.started_at
            if run.status == SyncStatus.FAILED and not metrics.last_failure:
                metrics.last_failure = run.started_at
            if metrics.last_success and metrics.last_failure:
                break

        return metrics

    def get_success_rate(self, hours: Optional[int] = None, kind: Optional[str] = None) -> float:
        """Share of successful runs (0.0 to 1.0)."""
        agg = self.get_aggregate_metrics(hours, kind)
        if agg.total_runs == 0:
            return 0.0
        return agg.successful_runs / agg.total_runs

    def clear_history(self):
        self._history.clear()
        self._current.clear()


sync_metrics = SyncMetrics()
