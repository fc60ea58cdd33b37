# ringscan/prober/dispatch.py
from typing import Optional

from ringscan.engine.state import ProbeAttempt, ProbeTarget, Protocol
from ringscan.prober.base import Prober
from ringscan.prober.icmp import IcmpProber
from ringscan.prober.tcp import TcpProber


class ProtocolProber(Prober):
    """Routes each target to the prober for its protocol."""

    def __init__(self, tcp: Optional[Prober] = None, icmp: Optional[Prober] = None, icmp_workers: int = 32):
        self.tcp = tcp or TcpProber()
        # the ICMP side holds a thread pool, so build it only when asked for
        self._icmp = icmp
        self._icmp_workers = icmp_workers

    @property
    def icmp(self) -> Prober:
        if self._icmp is None:
            self._icmp = IcmpProber(workers=self._icmp_workers)
        return self._icmp

    async def probe_once(self, target: ProbeTarget, timeout_s: float) -> ProbeAttempt:
        if target.protocol is Protocol.ICMP:
            return await self.icmp.probe_once(target, timeout_s)
        return await self.tcp.probe_once(target, timeout_s)

    def close(self) -> None:
        self.tcp.close()
        if self._icmp is not None:
            self._icmp.close()
