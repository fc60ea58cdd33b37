# ringscan/prober/fake.py
import asyncio
from collections import deque

from ringscan.engine.state import ProbeAttempt, ProbeTarget
from ringscan.prober.base import Prober

class FakeProber(Prober):
    """
    script: dict[(host, port, protocol)] -> list of ProbeAttempt to return, one per call.
    If no scripted attempt is left, returns a failed "timeout" attempt.
    delay_s lets tests keep attempts in flight long enough to observe concurrency.
    """
    def __init__(self, script=None, delay_s: float = 0.0):
        self.script = {}
        if script:
            for k, v in script.items():
                self.script[k] = deque(v)
        self.delay_s = delay_s
        self.calls = []          # (target, timeout_s) in call order
        self.in_flight = 0
        self.peak_in_flight = 0

    async def probe_once(self, target: ProbeTarget, timeout_s: float) -> ProbeAttempt:
        self.calls.append((target, timeout_s))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            dq = self.script.get((target.host, target.port, target.protocol))
            if dq:
                return dq.popleft()
            return ProbeAttempt.failure("timeout")
        finally:
            self.in_flight -= 1
