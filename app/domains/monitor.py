"""
Periodic drift detection for configured custom domains.
"""

import asyncio
import logging
from typing import Dict, Optional

from .diagnostics import DiagnosticsReporter, Health
from .errors import DomainError
from .repository import DomainRepository

logger = logging.getLogger("waveorder_domains.domains.monitor")


class DomainHealthMonitor:
    """Runs diagnostics for every configured domain on an interval."""

    def __init__(
        self,
        repository: DomainRepository,
        reporter: DiagnosticsReporter,
        interval: int = 3600,
    ):
        self.repository = repository
        self.reporter = reporter
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> Dict[str, str]:
        """
        Diagnose every configured domain once.

        Returns {domain: overall_health}. One failing domain never stops
        the sweep.
        """
        verdicts: Dict[str, str] = {}
        for record in await self.repository.list_all():
            try:
                report = await self.reporter.run(record.domain)
            except DomainError as e:
                logger.warning(f"Health check skipped for {record.domain}: {e.message}")
                continue

            verdicts[record.domain] = report.overall_health.value
            if report.expiring_warning:
                logger.warning(
                    f"Certificate for {record.domain} expires in "
                    f"{report.certificate.days_remaining} days"
                )
            if report.overall_health != Health.HEALTHY:
                logger.warning(
                    f"{record.domain} [{record.status.value}] is "
                    f"{report.overall_health.value}: dns={report.dns_health.value} "
                    f"ssl={report.ssl_health.value} "
                    f"connectivity={report.connectivity_health.value}"
                )
        return verdicts

    async def _loop(self) -> None:
        logger.info(f"Starting domain health monitor (interval: {self.interval}s)")
        while True:
            try:
                verdicts = await self.run_once()
                logger.info(f"Health sweep completed for {len(verdicts)} domains")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Health sweep error: {e}")
            await asyncio.sleep(self.interval)

    def start(self) -> Optional[asyncio.Task]:
        """Start the monitor in the background. Disabled when interval <= 0."""
        if self.interval <= 0:
            logger.info("Domain health monitor disabled")
            return None
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
        return self._task

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
