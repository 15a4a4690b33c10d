"""Structured trace events for template and document operations."""

from __future__ import annotations

import csv
import io
import json
import threading
from collections import Counter
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from time import perf_counter
from typing import Any

from docsynth.file_ops import atomic_write_text

TraceSink = Callable[[dict[str, Any]], None]

TRACE_FIELDS = (
    "seq",
    "timestamp",
    "event_type",
    "component",
    "action",
    "status",
    "document_path",
    "section",
    "template_id",
    "duration_ms",
    "details",
)
TRACE_JSON = "trace.json"
TRACE_CSV = "trace.csv"


class RunTraceCollector:
    """Thread-safe collector for structured trace events.

    Components that accept a collector log through it; the CLI streams events to
    the console through the live sink and exports the run with :meth:`export`.
    """

    def __init__(self) -> None:
        self._events: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._live_sink: TraceSink | None = None

    def set_live_sink(self, sink: TraceSink | None) -> None:
        """Set optional callback receiving each event as it is recorded."""
        with self._lock:
            self._live_sink = sink

    def log(
        self,
        *,
        event_type: str,
        component: str,
        action: str,
        status: str = "ok",
        document_path: str | Path | None = None,
        section: str | None = None,
        template_id: str | None = None,
        duration_ms: int | None = None,
        details: dict[str, Any] | str | None = None,
    ) -> None:
        """Record a structured trace event."""
        with self._lock:
            event = {
                "seq": len(self._events) + 1,
                "timestamp": datetime.now(UTC).isoformat(),
                "event_type": event_type,
                "component": component,
                "action": action,
                "status": status,
                "document_path": "" if document_path is None else str(document_path),
                "section": section or "",
                "template_id": template_id or "",
                "duration_ms": "" if duration_ms is None else duration_ms,
                "details": _serialize_details(details),
            }
            self._events.append(event)
            sink = self._live_sink
        if sink is None:
            return
        try:
            sink(dict(event))
        except Exception:
            # Sinks are observers; the traced operation continues regardless.
            pass

    @contextmanager
    def timed(
        self,
        *,
        event_type: str,
        component: str,
        action: str,
        document_path: str | Path | None = None,
        section: str | None = None,
        template_id: str | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Record one event for the wrapped block, with its duration.

        The yielded dict is merged into the event details. An exception inside the
        block is recorded with status ``error`` and re-raised.
        """
        details: dict[str, Any] = {}
        started_at = perf_counter()
        status = "ok"
        try:
            yield details
        except Exception as exc:
            status = "error"
            details["error"] = str(exc)
            raise
        finally:
            self.log(
                event_type=event_type,
                component=component,
                action=action,
                status=status,
                document_path=document_path,
                section=section,
                template_id=template_id,
                duration_ms=int((perf_counter() - started_at) * 1000),
                details=details or None,
            )

    def events(self) -> list[dict[str, Any]]:
        """Return a shallow copy of collected events."""
        with self._lock:
            return list(self._events)

    def status_counts(self) -> dict[str, int]:
        """Number of events per status, in first-seen order."""
        return dict(Counter(event["status"] for event in self.events()))

    def export(self, run_dir: Path) -> tuple[Path, Path]:
        """Write the events to ``trace.json`` and ``trace.csv`` under ``run_dir``."""
        events = self.events()
        json_path = run_dir / TRACE_JSON
        csv_path = run_dir / TRACE_CSV
        atomic_write_text(json_path, json.dumps(events, indent=2) + "\n")
        atomic_write_text(csv_path, _events_to_csv(events))
        return json_path, csv_path


def _events_to_csv(events: list[dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=TRACE_FIELDS)
    writer.writeheader()
    writer.writerows(events)
    return buffer.getvalue()


def _serialize_details(details: dict[str, Any] | str | None) -> str:
    if details is None:
        return ""
    if isinstance(details, str):
        return details
    return json.dumps(details, sort_keys=True, default=str)
