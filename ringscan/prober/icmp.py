# ringscan/prober/icmp.py
import asyncio
import ipaddress
import logging
import random
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import scapy.all as scapy
from scapy.error import Scapy_Exception

from ringscan.engine.state import ProbeAttempt, ProbeTarget, Protocol
from ringscan.prober.base import PERMISSION_DENIED, Prober

logger = logging.getLogger(__name__)


class IdentifierSource:
    """
    Thread-safe supplier of ICMP (identifier, sequence) pairs.

    Identifiers are random per attempt; sequences come from a shared 16-bit
    counter, so two attempts in flight never carry the same pair.
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._seq = self._rng.randint(0, 0xFFFF)

    def next_pair(self) -> tuple[int, int]:
        with self._lock:
            ident = self._rng.randint(1, 0xFFFF)
            self._seq = (self._seq + 1) & 0xFFFF
            return ident, self._seq


class IcmpProber(Prober):
    """
    ICMP echo via scapy. scapy's send/receive is blocking, so each attempt
    runs on a bounded thread pool while the event loop awaits the future.
    Needs raw-socket privilege; without it every attempt fails with
    "permission denied" and the rest of the scan carries on.
    """

    def __init__(self, ids: Optional[IdentifierSource] = None, workers: int = 32):
        self.ids = ids or IdentifierSource()
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="icmp")

    async def probe_once(self, target: ProbeTarget, timeout_s: float) -> ProbeAttempt:
        if target.protocol is not Protocol.ICMP:
            raise ValueError(f"IcmpProber cannot probe {target.protocol.value} target {target.label()}")

        loop = asyncio.get_running_loop()
        started = time.monotonic()
        try:
            infos = await asyncio.wait_for(loop.getaddrinfo(target.host, None), timeout=timeout_s)
        except asyncio.TimeoutError:
            return self._failed(target, "timeout")
        except socket.gaierror:
            return self._failed(target, "dns resolution failed")
        if not infos:
            return self._failed(target, "dns resolution failed")
        address = infos[0][4][0]

        # resolution spends from the same per-attempt budget
        remaining_s = timeout_s - (time.monotonic() - started)
        if remaining_s <= 0:
            return self._failed(target, "timeout")

        ident, seq = self.ids.next_pair()
        try:
            attempt = await loop.run_in_executor(
                self._pool, self._echo, address, ident, seq, remaining_s
            )
        except PermissionError:
            return self._failed(target, PERMISSION_DENIED)
        except Scapy_Exception as e:
            # BPF platforms report missing privilege this way
            if "permission" in str(e).lower():
                return self._failed(target, PERMISSION_DENIED)
            return self._failed(target, f"icmp error: {e}")
        except OSError as e:
            return self._failed(target, f"icmp error: {e.strerror or e}")

        if not attempt.succeeded:
            logger.debug("icmp %s failed: %s", target.label(), attempt.error)
        return attempt

    def _echo(self, address: str, ident: int, seq: int, timeout_s: float) -> ProbeAttempt:
        """Blocking: send one echo request and wait for its reply."""
        address = address.split("%", 1)[0]
        if ipaddress.ip_address(address).version == 6:
            request = scapy.IPv6(dst=address) / scapy.ICMPv6EchoRequest(id=ident, seq=seq)
            reply_layer = scapy.ICMPv6EchoReply
        else:
            request = scapy.IP(dst=address) / scapy.ICMP(type=8, id=ident, seq=seq)
            reply_layer = scapy.ICMP

        started = time.time()
        answered, _ = scapy.sr(request, timeout=timeout_s, verbose=0)
        if not answered:
            return ProbeAttempt.failure("timeout")

        sent, reply = answered[0]
        if not reply.haslayer(reply_layer):
            icmp = reply.payload
            return ProbeAttempt.failure(
                f"icmp type {getattr(icmp, 'type', '?')} code {getattr(icmp, 'code', '?')}"
            )

        echo = reply[reply_layer]
        if reply_layer is scapy.ICMP and echo.type != 0:
            return ProbeAttempt.failure(f"icmp type {echo.type} code {echo.code}")
        if echo.id != ident or echo.seq != seq:
            return ProbeAttempt.failure("reply mismatch")

        sent_at = getattr(sent, "sent_time", None) or started
        return ProbeAttempt.success(max(0.0, (float(reply.time) - float(sent_at)) * 1000.0))

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    @staticmethod
    def _failed(target: ProbeTarget, reason: str) -> ProbeAttempt:
        logger.debug("icmp %s failed: %s", target.label(), reason)
        return ProbeAttempt.failure(reason)
