# ringscan/engine/aggregator.py
import time
from typing import Callable, Iterable

from ringscan.engine.state import ProbeResult, ScanReport, Status, TargetSummary


def status_for(successful: int) -> Status:
    """Lenient policy: a single successful attempt marks the endpoint up."""
    return Status.UP if successful > 0 else Status.DOWN


def summarize(result: ProbeResult) -> TargetSummary:
    latencies = [a.latency_ms for a in result.attempts if a.succeeded]
    successful = len(latencies)
    count = result.attempt_count

    last_error = None
    if successful == 0:
        for a in reversed(result.attempts):
            if a.error:
                last_error = a.error
                break

    return TargetSummary(
        target=result.target,
        attempt_count=count,
        successful=successful,
        success_rate=successful / count if count else 0.0,
        avg_latency_ms=sum(latencies) / successful if successful else None,
        response_times=tuple(int(round(ms)) for ms in latencies),
        status=status_for(successful),
        error=last_error,
    )


def build_report(results: Iterable[ProbeResult],
                 cycle: int = 1,
                 clock: Callable[[], float] = time.time) -> ScanReport:
    return ScanReport(
        timestamp=str(int(clock())),
        results=tuple(summarize(r) for r in results),
        cycle=cycle,
    )
