# ringscan/engine/controller.py

import asyncio
import logging
from typing import Callable, Optional, Sequence

from ringscan.engine.aggregator import build_report
from ringscan.engine.executor import ProbeExecutor
from ringscan.engine.expander import expand_targets
from ringscan.engine.state import ProbeTarget, Protocol, ScanReport
from ringscan.prober.base import PERMISSION_DENIED

logger = logging.getLogger(__name__)


class ScanController:
    def __init__(self, prober, settings):
        self.prober = prober
        self.s = settings
        self.executor = ProbeExecutor(prober, max_concurrency=settings.max_concurrency)
        self._warned_icmp_permission = False

    def targets(self, hosts: Sequence[str]) -> list[ProbeTarget]:
        return expand_targets(hosts, self.s.ports, self.s.ping)

    async def run_once(self, hosts: Sequence[str], cycle: int = 1) -> ScanReport:
        """Expand -> run every attempt -> summarize. One complete cycle."""
        targets = self.targets(hosts)
        logger.info("cycle %d: probing %d targets x %d attempts", cycle, len(targets), self.s.count)

        results = await self.executor.run(
            targets,
            attempt_count=self.s.count,
            tcp_timeout_s=self.s.tcp_timeout_s,
            icmp_timeout_s=self.s.icmp_timeout_s,
        )
        report = build_report(results, cycle=cycle)

        up = sum(1 for r in report.results if r.successful > 0)
        logger.info("cycle %d: %d/%d targets up", cycle, up, len(report.results))
        self._check_icmp_permission(report)
        return report

    async def run(self,
                  hosts: Sequence[str],
                  emit: Callable[[ScanReport], None],
                  stop_event: Optional[asyncio.Event] = None) -> int:
        """
        Single-cycle (settings.once) or continuous loop. The stop event is only
        consulted between cycles: a cycle that started always finishes and is
        emitted. Returns the number of cycles emitted.
        """
        stop = stop_event or asyncio.Event()
        # surface ConfigError before any probing
        self.targets(hosts)

        cycles = 0
        while not stop.is_set():
            report = await self.run_once(hosts, cycle=cycles + 1)
            emit(report)
            cycles += 1

            if self.s.once:
                break
            if self.s.max_cycles and cycles >= self.s.max_cycles:
                break

            try:
                await asyncio.wait_for(stop.wait(), timeout=self.s.interval_s)
            except asyncio.TimeoutError:
                pass

        if stop.is_set():
            logger.info("stopped after %d cycle(s)", cycles)
        return cycles

    def _check_icmp_permission(self, report: ScanReport) -> None:
        if self._warned_icmp_permission:
            return
        for summary in report.results:
            if summary.target.protocol is Protocol.ICMP and summary.error == PERMISSION_DENIED:
                logger.warning("ICMP needs raw socket privilege; run as root or grant CAP_NET_RAW")
                self._warned_icmp_permission = True
                return
