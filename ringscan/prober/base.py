# ringscan/prober/base.py
from abc import ABC, abstractmethod

from ringscan.engine.state import ProbeAttempt, ProbeTarget

PERMISSION_DENIED = "permission denied"

class Prober(ABC):
    @abstractmethod
    async def probe_once(self, target: ProbeTarget, timeout_s: float) -> ProbeAttempt:
        """Run exactly one attempt against target and return its ProbeAttempt.

        Implementations never raise for network failures; they return
        ProbeAttempt.failure(<reason>) instead.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release any long-lived resources (thread pools etc.)."""
