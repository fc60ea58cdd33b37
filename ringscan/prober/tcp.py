# ringscan/prober/tcp.py
import asyncio
import logging
import socket
import time

from ringscan.engine.state import ProbeAttempt, ProbeTarget, Protocol
from ringscan.prober.base import Prober

logger = logging.getLogger(__name__)


class TcpProber(Prober):
    """
    One TCP connect per attempt. The connection is torn down as soon as the
    handshake completes; no data is exchanged and nothing is pooled.
    """

    async def probe_once(self, target: ProbeTarget, timeout_s: float) -> ProbeAttempt:
        if target.protocol is not Protocol.TCP:
            raise ValueError(f"TcpProber cannot probe {target.protocol.value} target {target.label()}")

        try:
            writer, latency_ms = await asyncio.wait_for(self._connect(target), timeout=timeout_s)
        except asyncio.TimeoutError:
            return self._failed(target, "timeout")
        except socket.gaierror:
            return self._failed(target, "dns resolution failed")
        except ConnectionRefusedError:
            return self._failed(target, "connection refused")
        except ConnectionResetError:
            return self._failed(target, "connection reset")
        except OSError as e:
            return self._failed(target, f"connection error: {e.strerror or e}")

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            # peer reset during close; the connect itself succeeded
            pass
        return ProbeAttempt.success(latency_ms)

    @staticmethod
    async def _connect(target: ProbeTarget):
        """Resolve, then dial the first address only; latency covers the dial alone."""
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(target.host, target.port, type=socket.SOCK_STREAM)
        if not infos:
            raise socket.gaierror(socket.EAI_NONAME, "no addresses")
        address, port = infos[0][4][:2]

        start = time.perf_counter()
        _, writer = await asyncio.open_connection(address, port)
        return writer, (time.perf_counter() - start) * 1000.0

    @staticmethod
    def _failed(target: ProbeTarget, reason: str) -> ProbeAttempt:
        logger.debug("tcp %s failed: %s", target.label(), reason)
        return ProbeAttempt.failure(reason)
