# ringscan/engine/executor.py
import asyncio
import contextlib
import logging
import time
from typing import Optional, Sequence

from ringscan.engine.state import ProbeAttempt, ProbeResult, ProbeTarget, Protocol

logger = logging.getLogger(__name__)


class ProbeExecutor:
    """
    Fans out attempt_count attempts for every target at once and waits for all
    of them. With max_concurrency set, a semaphore caps how many attempts (and
    so how many sockets) are open at the same time; otherwise nothing is capped.
    """

    def __init__(self, prober, max_concurrency: Optional[int] = None):
        self.prober = prober
        self.max_concurrency = max_concurrency or None

    async def run(self,
                  targets: Sequence[ProbeTarget],
                  attempt_count: int,
                  tcp_timeout_s: float,
                  icmp_timeout_s: float) -> list[ProbeResult]:
        results = [ProbeResult(target=t, attempt_count=attempt_count) for t in targets]
        gate = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def attempt(result: ProbeResult):
            timeout_s = icmp_timeout_s if result.target.protocol is Protocol.ICMP else tcp_timeout_s
            async with (gate if gate is not None else contextlib.nullcontext()):
                try:
                    outcome = await self.prober.probe_once(result.target, timeout_s)
                except Exception as e:
                    logger.exception("prober raised for %s", result.target.label())
                    outcome = ProbeAttempt.failure(f"internal error: {e}")
            # appended as each attempt lands: completion order
            result.attempts.append(outcome)

        tasks = [attempt(r) for r in results for _ in range(attempt_count)]
        logger.debug("launching %d attempts across %d targets (limit=%s)",
                     len(tasks), len(results), self.max_concurrency or "none")
        started = time.monotonic()
        await asyncio.gather(*tasks)
        logger.debug("all attempts joined in %.3fs", time.monotonic() - started)
        return results
