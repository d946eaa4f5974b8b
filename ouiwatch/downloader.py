"""Scheduled download of a remote file with atomic replacement on disk.

Events
    ``updated`` -> :class:`RefreshUpdated` (path, url, timestamp)
    ``error``   -> :class:`RefreshFailed` (error, stage, url)

The destination is never written in place: the payload goes to a temp
file in the same directory and is then renamed over the destination, so
readers see either the previous file or the complete new one.
"""
from __future__ import annotations

import logging
import os
import stat
import tempfile
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
from apscheduler.schedulers.background import BackgroundScheduler

from ouiwatch import __version__
from ouiwatch.cron import build_trigger, last_fire_time
from ouiwatch.errors import DownloadError, InitError, OuiWatchError, WriteError
from ouiwatch.log import get_logger

EVENTS = ("updated", "error")


# os.umask can only be read by setting it; do it once, before any threads.
_UMASK = os.umask(0)
os.umask(_UMASK)
DEFAULT_CRON = "0 0 * * 0"  # Sunday at midnight


@dataclass(frozen=True)
class RefreshUpdated:
    path: str
    url: str
    timestamp: datetime


@dataclass(frozen=True)
class RefreshFailed:
    error: Exception
    stage: str
    url: str


Listener = Callable[[Any], None]


class ScheduledDownloader:
    def __init__(
        self,
        url: str,
        file_path: Union[str, Path],
        cron: str = DEFAULT_CRON,
        throw_errors_on_init: bool = False,
        timezone: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        scheduler: Optional[Any] = None,
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not url or not file_path:
            raise ValueError('"url" and "file_path" are required')
        self.url = url
        self.file_path = Path(file_path)
        self.cron = cron
        self.throw_errors_on_init = throw_errors_on_init
        self.trigger = build_trigger(cron, timezone=timezone)
        self.logger = logger or get_logger("downloader")
        self.timeout = timeout

        self._client = http_client
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler if scheduler is not None else BackgroundScheduler()
        self._job = None
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

        self.last_updated: Optional[datetime] = None
        self.last_error: Optional[RefreshFailed] = None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, event: str, callback: Listener) -> None:
        if event not in EVENTS:
            raise ValueError(f"unknown event: {event}")
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Listener) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def _emit(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception:
                self.logger.exception("Listener for %r event failed", event)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Refresh the file if it is missing or stale, then arm the timer.

        No ``updated`` event is emitted for the refresh performed here.
        """
        try:
            stale = self.is_stale()
        except InitError as exc:
            if self.throw_errors_on_init:
                raise
            self.logger.error(
                "Failed during init/expiration check: %s", exc,
                extra={"url": self.url, "path": str(self.file_path), "stage": exc.stage},
            )
            self._fail(exc, emit=True)
            stale = True

        if stale:
            try:
                self.refresh_now(emit_errors=not self.throw_errors_on_init, emit_update=False)
            except OuiWatchError:
                if self.throw_errors_on_init:
                    raise

        self.schedule()
        self.logger.info(
            "Scheduled recurring download job (cron=%r)", self.cron,
            extra={"url": self.url, "path": str(self.file_path)},
        )

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True if the file is missing or older than the last cron tick."""
        try:
            mtime = self.file_path.stat().st_mtime
        except FileNotFoundError:
            return True
        except OSError as exc:
            raise InitError(f"cannot stat {self.file_path}: {exc}") from exc

        now = now or datetime.now(timezone.utc)
        last_due = last_fire_time(self.trigger, now)
        if last_due is None:
            return False
        return datetime.fromtimestamp(mtime, tz=timezone.utc) < last_due

    def refresh_now(self, emit_errors: bool = True, emit_update: bool = True) -> RefreshUpdated:
        """Download the file and atomically replace the destination."""
        self.logger.debug("Downloading %s", self.url, extra={"url": self.url})
        try:
            body = self._fetch()
        except DownloadError as exc:
            self.logger.error("Download failed: %s", exc, extra={"url": self.url, "stage": exc.stage})
            self._fail(exc, emit=emit_errors)
            raise

        try:
            self._write(body)
        except WriteError as exc:
            self.logger.error(
                "Failed writing file to disk: %s", exc,
                extra={"url": self.url, "path": str(self.file_path), "stage": exc.stage},
            )
            self._fail(exc, emit=emit_errors)
            raise

        update = RefreshUpdated(
            path=str(self.file_path), url=self.url, timestamp=datetime.now(timezone.utc),
        )
        self.last_updated = update.timestamp
        self.last_error = None
        self.logger.info(
            "File downloaded successfully to %s (%d bytes)", self.file_path, len(body),
            extra={"url": self.url, "path": update.path},
        )
        if emit_update:
            self._emit("updated", update)
        return update

    def schedule(self) -> None:
        """Arm the recurring job, cancelling any earlier registration."""
        self.cancel()
        self._job = self._scheduler.add_job(
            self._run_scheduled_refresh,
            trigger=self.trigger,
            name=f"refresh {self.file_path.name}",
            coalesce=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()

    def cancel(self) -> None:
        if self._job is not None:
            try:
                self._job.remove()
            except LookupError:
                # JobLookupError: the scheduler already dropped it.
                pass
            self._job = None

    def shutdown(self) -> None:
        self.cancel()
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    @property
    def next_run_time(self) -> Optional[datetime]:
        if self._job is None:
            return None
        return getattr(self._job, "next_run_time", None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_scheduled_refresh(self) -> None:
        try:
            self.refresh_now()
        except OuiWatchError:
            pass  # logged and emitted by refresh_now
        except Exception:
            self.logger.exception("Unexpected failure in scheduled refresh of %s", self.url)

    def _fail(self, error: OuiWatchError, emit: bool) -> None:
        failure = RefreshFailed(error=error, stage=error.stage, url=self.url)
        self.last_error = failure
        if emit:
            self._emit("error", failure)

    def _fetch(self) -> bytes:
        client = self._client or httpx.Client(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": f"ouiwatch/{__version__}"},
        )
        try:
            response = client.get(self.url)
        except httpx.HTTPError as exc:
            raise DownloadError(f"GET {self.url} failed: {exc}") from exc
        finally:
            if client is not self._client:
                client.close()
        if not 200 <= response.status_code < 300:
            raise DownloadError(f"HTTP {response.status_code} from {self.url}")
        return response.content

    def _file_mode(self) -> int:
        """Keep the destination's mode, or use the umask default for a new file.

        mkstemp creates files readable by the owner only.
        """
        try:
            return stat.S_IMODE(self.file_path.stat().st_mode)
        except FileNotFoundError:
            return 0o666 & ~_UMASK

    def _write(self, body: bytes) -> None:
        directory = self.file_path.parent
        tmp_path: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f"{self.file_path.name}.tmp-")
            with os.fdopen(fd, "wb") as handle:
                handle.write(body)
            os.chmod(tmp_path, self._file_mode())
            os.replace(tmp_path, self.file_path)
            tmp_path = None
        except OSError as exc:
            raise WriteError(f"cannot write {self.file_path}: {exc}") from exc
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    self.logger.warning("Could not remove temp file %s", tmp_path)
