"""
Inkwell Logging System — Structured JSON file-based audit log with async queue.

Implements:
- FileLogger: Per-object-type, per-category JSONL files (daily rotation)
- AsyncLogQueue: In-memory queue with background flush (interval / batch size)
- Log entry builders for block syncs, version events, tree cascades,
  retention sweeps and security denials

Module loggers (``logging.getLogger("inkwell.…")``) are still used for
operator-facing messages; this module is the machine-readable trail.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

logger = logging.getLogger("inkwell.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "documents": ["execution", "security"],
    "blocks": ["execution", "performance", "security"],
    "versions": ["execution", "security"],
    "retention": ["execution", "performance"],
    "comments": ["execution", "security"],
    "system": ["execution", "security"],
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-object-type, per-category files.
    Files rotate daily: logs/{object_type}/{category}/{YYYY-MM-DD}.jsonl

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    def write(self, entry: LogEntry) -> None:
        """Write a single log entry to the appropriate file."""
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Write a batch of log entries, grouped by file path."""
        grouped: Dict[str, List[LogEntry]] = defaultdict(list)
        for entry in entries:
            grouped[str(self._resolve_path(entry.object_type, entry.category))].append(entry)

        for file_path, batch in grouped.items():
            with self._file_locks[file_path]:
                Path(file_path).parent.mkdir(parents=True, exist_ok=True)
                with open(file_path, "a", encoding="utf-8") as f:
                    for entry in batch:
                        f.write(entry.to_json())
                        f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        today = date.today().isoformat()
        return self._log_dir / object_type / category / f"{today}.jsonl"

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def query(
        self,
        object_type: str,
        category: str,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Read back entries for an object_type/category, newest first.

        ``filters`` keeps only entries whose top-level keys equal ALL the
        given values. Dates default to the last 7 days.
        """
        if end_date is None:
            end_date = date.today()
        if start_date is None:
            start_date = end_date - timedelta(days=7)

        log_base = self._log_dir / object_type / category
        if not log_base.exists():
            return []

        results: List[Dict[str, Any]] = []
        current = end_date
        while current >= start_date:
            file_path = log_base / f"{current.isoformat()}.jsonl"
            if file_path.exists():
                day_entries = self._read_jsonl(file_path, filters)
                day_entries.reverse()
                results.extend(day_entries)
            if len(results) >= limit:
                break
            current -= timedelta(days=1)

        return results[:limit]

    @staticmethod
    def _read_jsonl(path: Path, filters: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if filters and not all(data.get(k) == v for k, v in filters.items()):
                        continue
                    entries.append(data)
        except OSError as exc:
            logger.warning("Could not read log file %s: %s", path, exc)
        return entries


class AsyncLogQueue:
    """
    In-memory queue with a background flush thread.

    Entries are pushed non-blocking. The flush thread writes to FileLogger
    every flush_interval_ms OR when flush_batch_size entries accumulate,
    whichever comes first.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._logger = file_logger
        self._flush_interval = flush_interval_ms / 1000.0
        self._flush_batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._running = False
        self._flush_thread: Optional[threading.Thread] = None
        self._dropped_count = 0

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="inkwell-log-flush",
            daemon=True,
        )
        self._flush_thread.start()
        logger.info("Async log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the flush thread and drain remaining entries."""
        self._running = False
        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=timeout)
        self._drain()
        logger.info(f"Async log queue stopped (dropped: {self._dropped_count})")

    def push(self, entry: LogEntry) -> bool:
        """Queue an entry. Returns False if it was dropped (queue full)."""
        try:
            self._queue.put_nowait(entry)
            return True
        except Full:
            self._dropped_count += 1
            return False

    def _flush_loop(self) -> None:
        while self._running:
            batch = self._collect_batch()
            if batch:
                try:
                    self._logger.write_batch(batch)
                except OSError as e:
                    logger.error(f"Log flush error: {e}")
            else:
                time.sleep(self._flush_interval)

    def _collect_batch(self) -> List[LogEntry]:
        batch: List[LogEntry] = []
        deadline = time.monotonic() + self._flush_interval

        while len(batch) < self._flush_batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.append(self._queue.get(timeout=min(remaining, 0.01)))
            except Empty:
                if batch:
                    break

        return batch

    def _drain(self) -> None:
        batch: List[LogEntry] = []
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        if batch:
            try:
                self._logger.write_batch(batch)
            except OSError as e:
                logger.error(f"Log drain error: {e}")

    @property
    def dropped_count(self) -> int:
        return self._dropped_count


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    object_ref: str,
    execution_id: Optional[str] = None,
    user_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "object_ref": object_ref,
    }
    if execution_id:
        entry["execution_id"] = execution_id
    if user_id is not None:
        entry["user_id"] = user_id
    entry.update(extra)
    return entry


def log_block_sync(
    document_id: int,
    user_id: str,
    created: int,
    updated: int,
    deleted: int,
    duration_ms: float,
    execution_id: Optional[str] = None,
) -> LogEntry:
    """Build a block reconciliation log entry."""
    data = _base_entry(
        event="blocks_synced",
        level="INFO",
        object_ref=f"documents.{document_id}",
        execution_id=execution_id,
        user_id=user_id,
        document_id=document_id,
        created=created,
        updated=updated,
        deleted=deleted,
        duration_ms=duration_ms,
    )
    return LogEntry("blocks", "execution", data)


def log_version_event(
    event: str,
    document_id: int,
    user_id: Optional[str],
    version_id: Optional[int] = None,
    change_description: Optional[str] = None,
    execution_id: Optional[str] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a version lifecycle entry (created / restored / deleted)."""
    data = _base_entry(
        event=event,
        level="ERROR" if error else "INFO",
        object_ref=f"documents.{document_id}",
        execution_id=execution_id,
        user_id=user_id,
        document_id=document_id,
    )
    if version_id is not None:
        data["version_id"] = version_id
    if change_description:
        data["change_description"] = change_description
    if error:
        data["error"] = error
    return LogEntry("versions", "execution", data)


def log_tree_event(
    event: str,
    document_id: int,
    user_id: str,
    affected: int,
    failures: Optional[List[Dict[str, Any]]] = None,
    execution_id: Optional[str] = None,
) -> LogEntry:
    """Build an archive / restore / remove cascade entry."""
    data = _base_entry(
        event=event,
        level="ERROR" if failures else "INFO",
        object_ref=f"documents.{document_id}",
        execution_id=execution_id,
        user_id=user_id,
        document_id=document_id,
        affected=affected,
    )
    if failures:
        data["failures"] = failures
    return LogEntry("documents", "execution", data)


def log_import_run(
    user_id: str,
    success: int,
    failed: int,
    skipped: int,
    duration_ms: float,
    execution_id: Optional[str] = None,
) -> LogEntry:
    data = _base_entry(
        event="documents_imported",
        level="WARNING" if failed else "INFO",
        object_ref=f"documents.import.{user_id}",
        execution_id=execution_id,
        user_id=user_id,
        success=success,
        failed=failed,
        skipped=skipped,
        duration_ms=duration_ms,
    )
    return LogEntry("documents", "execution", data)


def log_sweep_run(
    documents_scanned: int,
    deleted_by_age: int,
    deleted_by_count: int,
    failures: int,
    duration_ms: float,
    trigger: str = "schedule",
) -> LogEntry:
    """Build a retention sweep summary entry."""
    data = _base_entry(
        event="retention_sweep",
        level="WARNING" if failures else "INFO",
        object_ref="retention.sweep",
        documents_scanned=documents_scanned,
        deleted_by_age=deleted_by_age,
        deleted_by_count=deleted_by_count,
        failures=failures,
        duration_ms=duration_ms,
        trigger=trigger,
    )
    return LogEntry("retention", "execution", data)


def log_security_event(
    event: str,
    object_ref: str,
    object_type: str,
    permission_needed: str,
    user_id: Optional[str],
    execution_id: Optional[str] = None,
    level: str = "WARNING",
) -> LogEntry:
    """Build a security event log entry (denied access)."""
    data = _base_entry(
        event=event,
        level=level,
        object_ref=object_ref,
        execution_id=execution_id,
        user_id=user_id,
        object_type=object_type,
        permission_needed=permission_needed,
    )
    target = object_type if object_type in OBJECT_TYPE_CATEGORIES else "system"
    return LogEntry(target, "security", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a system event log entry (startup, shutdown, schedule changes)."""
    data = _base_entry(event=event, level=level, object_ref="system")
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Initialize the global async log queue."""
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
    _global_queue = AsyncLogQueue(
        file_logger=FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push a log entry to the global queue. Non-blocking."""
    if _global_queue is None:
        logger.debug(f"Log queue not initialized — {entry.data.get('event')} entry dropped")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
