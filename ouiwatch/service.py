"""Coordinator wiring the scheduled downloader to the vendor resolver.

The downloader's ``updated`` event triggers a rebuild of the index; the
first rebuild happens in :meth:`OuiService.ensure_started`.  Lookups only
ever touch the in-memory index.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, List, Optional

import httpx

from ouiwatch.config import Settings
from ouiwatch.downloader import RefreshFailed, RefreshUpdated, ScheduledDownloader
from ouiwatch.errors import OuiWatchError, ParseError
from ouiwatch.log import get_logger
from ouiwatch.models import LookupResponse, LookupResult, RefreshReport, ServiceStatus
from ouiwatch.oui import OuiEntry
from ouiwatch.resolver import VendorResolver


def _to_result(entry: OuiEntry) -> LookupResult:
    return LookupResult(
        prefix=entry.prefix,
        organization=entry.organization,
        annotation=entry.annotation,
        bits=entry.bits,
    )


class OuiService:
    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.Client] = None,
        scheduler: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.logger = logger or get_logger("service")
        self.resolver = VendorResolver(settings.manuf_path, logger=self.logger)
        self.downloader: Optional[ScheduledDownloader] = None
        self.last_error: Optional[str] = None
        self._http_client = http_client
        self._scheduler = scheduler
        self._started = False
        self.lock = threading.Lock()

    @property
    def started(self) -> bool:
        return self._started

    def ensure_started(self) -> None:
        """Start the downloader and build the first index, once.

        A failed start leaves the service unstarted so the next call
        retries from scratch.
        """
        with self.lock:
            if self._started:
                return
            if self.settings.auto_update:
                self.downloader = self._start_downloader()
            try:
                self.resolver.rebuild()
            except ParseError as exc:
                self.logger.error("Error initializing MAC resolver: %s", exc)
                self._stop_downloader()
                raise
            self.logger.info("Initialized MAC resolver from %s", self.settings.manuf_path)
            self._started = True

    def _start_downloader(self) -> ScheduledDownloader:
        downloader = ScheduledDownloader(
            url=self.settings.url,
            file_path=self.settings.manuf_path,
            cron=self.settings.cron,
            throw_errors_on_init=self.settings.throw_errors_on_init,
            timezone=self.settings.timezone,
            http_client=self._http_client,
            scheduler=self._scheduler,
            timeout=self.settings.http_timeout,
            logger=self.logger,
        )
        downloader.add_listener("updated", self._on_updated)
        downloader.add_listener("error", self._on_error)
        try:
            downloader.initialize()
        except OuiWatchError as exc:
            self.logger.error("Error initializing scheduled file downloader: %s", exc)
            downloader.remove_all_listeners()
            downloader.shutdown()
            raise
        return downloader

    def _stop_downloader(self) -> None:
        if self.downloader is not None:
            self.downloader.remove_all_listeners()
            self.downloader.shutdown()
            self.downloader = None

    def _on_updated(self, event: RefreshUpdated) -> None:
        # The update event is not emitted for the refresh done during start.
        try:
            self.resolver.rebuild()
        except ParseError as exc:
            self.last_error = str(exc)
            self.logger.error(
                "Error reinitializing MAC resolver after update from %s: %s", event.url, exc,
            )
            return
        self.last_error = None
        self.logger.info("Successfully reinitialized MAC resolver")

    def _on_error(self, event: RefreshFailed) -> None:
        self.last_error = f"{event.stage}: {event.error}"
        self.logger.error("Error updating manuf file (%s stage): %s", event.stage, event.error)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def lookup(self, mac: str) -> Optional[LookupResult]:
        entry = self.resolver.lookup(mac)
        return _to_result(entry) if entry else None

    def lookup_many(self, macs: Iterable[str]) -> List[LookupResponse]:
        responses = []
        for mac in macs:
            result = self.lookup(mac)
            if result is None:
                if self.settings.return_misses:
                    responses.append(LookupResponse(mac=mac, found=False))
                continue
            responses.append(
                LookupResponse(mac=mac, found=True, summary=[result.organization], result=result)
            )
        self.logger.debug("Resolved %d of %d MAC addresses", sum(r.found for r in responses), len(responses))
        return responses

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def refresh(self) -> RefreshReport:
        """Download the manuf file now and rebuild the index from it."""
        downloader = self.downloader or ScheduledDownloader(
            url=self.settings.url,
            file_path=self.settings.manuf_path,
            cron=self.settings.cron,
            timezone=self.settings.timezone,
            http_client=self._http_client,
            scheduler=self._scheduler,
            timeout=self.settings.http_timeout,
            logger=self.logger,
        )
        # emit_update=False: the rebuild below replaces the listener's.
        try:
            update = downloader.refresh_now(emit_errors=False, emit_update=False)
            index = self.resolver.rebuild()
        except OuiWatchError as exc:
            self.last_error = f"{exc.stage}: {exc}"
            raise
        self.last_error = None
        return RefreshReport(
            path=update.path, url=update.url, timestamp=update.timestamp, entries=len(index),
        )

    def status(self) -> ServiceStatus:
        index = self.resolver.index
        downloader = self.downloader
        return ServiceStatus(
            ready=self.resolver.ready,
            entries=len(index),
            prefix_lengths=list(index.lengths),
            manuf_path=self.settings.manuf_path,
            url=self.settings.url,
            auto_update=self.settings.auto_update,
            cron=self.settings.cron,
            built_at=self.resolver.built_at,
            last_updated=downloader.last_updated if downloader else None,
            next_run_time=downloader.next_run_time if downloader else None,
            last_error=self.last_error,
        )

    def shutdown(self) -> None:
        with self.lock:
            self._stop_downloader()
            self._started = False
