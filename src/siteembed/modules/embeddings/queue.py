"""Durable SQLite work queue feeding the sync worker."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import json
from pathlib import Path
from typing import Callable, Protocol

from siteembed.core.logging import Logger

from .database import connect, ensure_schema, format_timestamp, utc_now
from .errors import ConfigurationError, GuardRejection
from .models import WorkItem
from .sql import load_sql
from .worker import SyncSummary

__all__ = [
    "DEFAULT_LEASE_SECONDS",
    "DEFAULT_MAX_ATTEMPTS",
    "DrainReport",
    "EmbeddingQueue",
    "QueueRunner",
    "QueuedItem",
]

DEFAULT_LEASE_SECONDS = 600.0
DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class QueuedItem:
    """A work item together with its queue bookkeeping."""

    id: int
    item: WorkItem
    status: str
    attempts: int = 0
    last_error: str | None = None


class EmbeddingQueue:
    """At-least-once queue of :class:`WorkItem` payloads.

    Claims run inside ``BEGIN IMMEDIATE`` so concurrent processes never
    claim the same row. A claim older than the lease is considered
    abandoned and becomes claimable again.
    """

    def __init__(
        self,
        database_path: Path,
        *,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        logger: Logger | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        if lease_seconds <= 0:
            raise ValueError("lease_seconds must be positive")
        self.database_path = Path(database_path)
        self.lease = timedelta(seconds=lease_seconds)
        self.logger = logger
        self._now = now
        self._insert_sql = load_sql("embedding_queue_insert.sql")
        self._claimable_sql = load_sql("embedding_queue_select_claimable.sql")
        self._mark_claimed_sql = load_sql("embedding_queue_mark_claimed.sql")
        self._complete_sql = load_sql("embedding_queue_complete.sql")
        self._release_sql = load_sql("embedding_queue_release.sql")
        self._fail_sql = load_sql("embedding_queue_fail.sql")
        self._select_sql = load_sql("embedding_queue_select.sql")
        self._counts_sql = load_sql("embedding_queue_counts.sql")

    def ensure_schema(self) -> None:
        ensure_schema(self.database_path)

    def _timestamp(self) -> str:
        return format_timestamp(self._now())

    def enqueue(self, item: WorkItem) -> int:
        """Store ``item`` and return its queue id."""

        with connect(self.database_path) as connection:
            cursor = connection.execute(
                self._insert_sql,
                {
                    "payload": json.dumps(item.to_payload(), sort_keys=True),
                    "now": self._timestamp(),
                },
            )
            queue_id = int(cursor.lastrowid)
        if self.logger is not None:
            self.logger.info(
                "embedding-queue-enqueued",
                queue_id=queue_id,
                **item.to_payload(),
            )
        return queue_id

    def claim(self) -> QueuedItem | None:
        """Claim the oldest claimable item or return ``None`` when idle."""

        while True:
            row = self._claim_row()
            if row is None:
                return None
            try:
                item = WorkItem.from_payload(json.loads(row["payload"]))
            except ValueError as exc:
                # Unparseable payloads can never succeed.
                self.fail(int(row["id"]), f"invalid payload: {exc}")
                continue
            attempts = int(row["attempts"])
            if row["status"] == "claimed":
                # An expired lease counts as an abandoned attempt.
                attempts += 1
                if self.logger is not None:
                    self.logger.warning(
                        "embedding-queue-lease-expired",
                        queue_id=int(row["id"]),
                        attempts=attempts,
                    )
            return QueuedItem(
                id=int(row["id"]),
                item=item,
                status="claimed",
                attempts=attempts,
                last_error=row["last_error"],
            )

    def _claim_row(self):
        now = self._now()
        with connect(self.database_path, autocommit=True) as connection:
            connection.execute("BEGIN IMMEDIATE")
            try:
                row = connection.execute(
                    self._claimable_sql,
                    {"lease_cutoff": format_timestamp(now - self.lease)},
                ).fetchone()
                if row is not None:
                    connection.execute(
                        self._mark_claimed_sql,
                        {"id": row["id"], "now": format_timestamp(now)},
                    )
                connection.execute("COMMIT")
            except BaseException:
                connection.execute("ROLLBACK")
                raise
        return row

    def _update(self, statement: str, queue_id: int, **params: object) -> None:
        with connect(self.database_path) as connection:
            connection.execute(
                statement,
                {"id": queue_id, "now": self._timestamp(), **params},
            )

    def complete(self, queue_id: int) -> None:
        self._update(self._complete_sql, queue_id)

    def release(self, queue_id: int, error: str | None = None) -> None:
        """Return a claimed item to the queue for another attempt."""

        self._update(self._release_sql, queue_id, error=error)

    def fail(self, queue_id: int, error: str | None = None) -> None:
        """Mark an item as terminally failed."""

        self._update(self._fail_sql, queue_id, error=error)
        if self.logger is not None:
            self.logger.error(
                "embedding-queue-item-failed",
                queue_id=queue_id,
                error=error,
            )

    def get(self, queue_id: int) -> QueuedItem | None:
        with connect(self.database_path) as connection:
            row = connection.execute(
                self._select_sql, {"id": queue_id}
            ).fetchone()
        if row is None:
            return None
        return QueuedItem(
            id=int(row["id"]),
            item=WorkItem.from_payload(json.loads(row["payload"])),
            status=row["status"],
            attempts=int(row["attempts"]),
            last_error=row["last_error"],
        )

    def counts(self) -> dict[str, int]:
        """Return the number of items per status."""

        with connect(self.database_path) as connection:
            rows = connection.execute(self._counts_sql).fetchall()
        return {row["status"]: int(row["total"]) for row in rows}


class ItemProcessor(Protocol):
    def process(self, item: WorkItem) -> SyncSummary: ...


@dataclass(slots=True)
class DrainReport:
    """Tally of a :meth:`QueueRunner.drain` pass."""

    claimed: int = 0
    completed: int = 0
    released: int = 0
    failed: int = 0
    summaries: list[SyncSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "claimed": self.claimed,
            "completed": self.completed,
            "released": self.released,
            "failed": self.failed,
            "embedded": sum(s.embedded for s in self.summaries),
            "skipped": sum(s.skipped for s in self.summaries),
            "field_failures": sum(s.failed for s in self.summaries),
        }


class QueueRunner:
    """Feed claimed queue items to a worker until idle or ``limit``.

    Configuration errors and guard rejections fail the item outright. Any
    other exception releases it until ``max_attempts`` is reached. Expired
    leases count towards the same limit.
    """

    def __init__(
        self,
        queue: EmbeddingQueue,
        worker: ItemProcessor,
        *,
        logger: Logger,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.queue = queue
        self.worker = worker
        self.logger = logger
        self.max_attempts = max_attempts

    def drain(self, limit: int | None = None) -> DrainReport:
        report = DrainReport()
        while limit is None or report.claimed < limit:
            queued = self.queue.claim()
            if queued is None:
                break
            report.claimed += 1
            self._run(queued, report)
        self.logger.info("embedding-queue-drained", **report.to_dict())
        return report

    def _run(self, queued: QueuedItem, report: DrainReport) -> None:
        if queued.attempts >= self.max_attempts:
            self.queue.fail(
                queued.id,
                f"gave up after {queued.attempts} abandoned or failed attempts",
            )
            report.failed += 1
            return
        try:
            summary = self.worker.process(queued.item)
        except (ConfigurationError, GuardRejection) as exc:
            self.queue.fail(queued.id, str(exc))
            report.failed += 1
            return
        except Exception as exc:
            attempts = queued.attempts + 1
            self.logger.exception(
                "embedding-queue-item-errored",
                queue_id=queued.id,
                attempts=attempts,
                max_attempts=self.max_attempts,
                error=str(exc),
                **queued.item.to_payload(),
            )
            if attempts >= self.max_attempts:
                self.queue.fail(queued.id, str(exc))
                report.failed += 1
            else:
                self.queue.release(queued.id, str(exc))
                report.released += 1
            return

        self.queue.complete(queued.id)
        report.completed += 1
        report.summaries.append(summary)
