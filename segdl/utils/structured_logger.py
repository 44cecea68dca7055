"""
JSON-lines event log for segment and session events.

Every event goes to the ``segdl.events`` logger as a one-line
message (``event: k=v``) and, when a log directory is configured, to
``<log_dir>/segdl_<timestamp>.jsonl`` as one JSON object per line tagged with
the session id. The file is meant for post-mortem analysis of resumes, gap
patches and retries.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO


class StructuredLogger:
    """
    Emits named events with keyword context.

    Usage:
        logger = StructuredLogger("segdl.events", log_dir=Path("logs"))
        logger.info("segment_failed", file="movie.mp4", index=2.0, error="timeout")
        logger.close()
    """

    def __init__(
        self,
        name: str,
        log_dir: Optional[Path] = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        self._logger = logging.getLogger(name)
        self.enable_console = enable_console
        self.session_id = f"{int(time.time())}_{id(self):x}"
        self.path: Optional[Path] = None
        self._file: Optional[TextIO] = None

        if enable_json and log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            self.path = log_dir / f"segdl_{datetime.now():%Y%m%d_%H%M%S}.jsonl"
            self._file = open(self.path, "a", encoding="utf-8")  # noqa: SIM115

    @property
    def enable_json(self) -> bool:
        return self._file is not None and not self._file.closed

    def emit(self, level: int, event: str, **context: Any) -> None:
        if self.enable_console and self._logger.isEnabledFor(level):
            fields = " ".join(f"{key}={value}" for key, value in context.items())
            self._logger.log(level, f"{event}: {fields}" if fields else event)
        if self.enable_json:
            self._write(logging.getLevelName(level), event, context)

    def _write(self, level: str, event: str, context: dict[str, Any]) -> None:
        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            "session_id": self.session_id,
            **context,
        }
        try:
            self._file.write(json.dumps(entry, default=str) + "\n")
            self._file.flush()
        except OSError as e:
            # event log only; never fails the download
            print(f"Event log write failed: {e}", file=sys.stderr)

    def debug(self, event: str, **context: Any) -> None:
        self.emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context: Any) -> None:
        self.emit(logging.INFO, event, **context)

    def warning(self, event: str, **context: Any) -> None:
        self.emit(logging.WARNING, event, **context)

    def error(self, event: str, **context: Any) -> None:
        self.emit(logging.ERROR, event, **context)

    def close(self) -> None:
        if self.enable_json:
            self._file.close()

    def __enter__(self) -> "StructuredLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


class DownloadLogger:
    """Events of the segment engine, keyed by the final file name."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def part_planned(
        self, file: str, total_size: int, segments: int, unfinished: int, saved: int
    ) -> None:
        self.logger.debug(
            "part_planned",
            file=file,
            total_size=total_size,
            segments=segments,
            unfinished=unfinished,
            saved_bytes=saved,
        )

    def segment_gap_patched(self, file: str, index: float, start: int, end: int) -> None:
        self.logger.info("segment_gap_patched", file=file, index=f"{index:f}", start=start, end=end)

    def segment_reset(self, file: str, index: float, cursor: int, end: int) -> None:
        self.logger.warning(
            "segment_reset_overshoot", file=file, index=f"{index:f}", cursor=cursor, end=end
        )

    def segment_retry(self, file: str, index: float, attempt: int, error: str) -> None:
        self.logger.debug(
            "segment_retry", file=file, index=f"{index:f}", attempt=attempt, error=error
        )

    def segment_failed(self, file: str, index: float, error: str) -> None:
        self.logger.error("segment_failed", file=file, index=f"{index:f}", error=error)

    def part_merged(self, file: str, size_bytes: int, segments: int, duration_s: float) -> None:
        self.logger.info(
            "part_merged",
            file=file,
            size_bytes=size_bytes,
            segments=segments,
            duration_s=round(duration_s, 2),
        )


class SessionLogger:
    """Events of a whole ``download`` run."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def session_started(self, total_urls: int, thread_number: int, max_workers: int) -> None:
        self.logger.info(
            "session_started",
            total_urls=total_urls,
            thread_number=thread_number,
            max_workers=max_workers,
        )

    def item_completed(self, title: str, status: str, error: Optional[str] = None) -> None:
        self.logger.info("item_completed", title=title, status=status, error=error)

    def session_completed(
        self,
        duration_s: float,
        items_downloaded: int,
        items_failed: int,
        items_skipped: int,
        total_size_mb: float,
    ) -> None:
        self.logger.info(
            "session_completed",
            duration_s=round(duration_s, 2),
            items_downloaded=items_downloaded,
            items_failed=items_failed,
            items_skipped=items_skipped,
            total_size_mb=round(total_size_mb, 2),
        )


def create_structured_logger(
    log_dir: Optional[Path] = None, enable_json: bool = False
) -> tuple[StructuredLogger, DownloadLogger, SessionLogger]:
    """Returns ``(base, download_events, session_events)`` sharing one log file."""
    base = StructuredLogger("segdl.events", log_dir=log_dir, enable_json=enable_json)
    return base, DownloadLogger(base), SessionLogger(base)
