# tests/test_prober_unit.py
import asyncio
import socket
import threading
import time

import pytest
import scapy.all as scapy
from scapy.error import Scapy_Exception

from ringscan.config import Settings
from ringscan.engine.controller import ScanController
from ringscan.engine.state import ProbeAttempt, ProbeTarget, Protocol, Status
from ringscan.prober import icmp as icmp_mod
from ringscan.prober.dispatch import ProtocolProber
from ringscan.prober.fake import FakeProber
from ringscan.prober.icmp import IcmpProber, IdentifierSource
from ringscan.prober.tcp import TcpProber


def _closed_port() -> int:
    """Bind an ephemeral port and release it; nothing listens there afterwards."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


# ---------------------------------------------------------------- tcp

def test_tcp_probe_open_port_succeeds_with_latency():
    async def scenario():
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            return await TcpProber().probe_once(ProbeTarget("127.0.0.1", port, Protocol.TCP), 2.0)

    attempt = asyncio.run(scenario())
    assert attempt.succeeded
    assert attempt.latency_ms is not None and attempt.latency_ms >= 0
    assert attempt.error is None


def test_tcp_probe_closed_port_is_refused():
    target = ProbeTarget("127.0.0.1", _closed_port(), Protocol.TCP)
    attempt = asyncio.run(TcpProber().probe_once(target, 1.0))
    assert not attempt.succeeded
    assert attempt.latency_ms is None
    assert attempt.error == "connection refused"


def test_tcp_probe_unresolvable_host():
    target = ProbeTarget("no-such-host.invalid", 80, Protocol.TCP)
    attempt = asyncio.run(TcpProber().probe_once(target, 2.0))
    assert not attempt.succeeded
    assert attempt.error == "dns resolution failed"


def test_tcp_probe_name_with_two_closed_addresses_is_refused(monkeypatch):
    """A name resolving to several closed addresses still reports the refusal."""
    port = _closed_port()
    real_getaddrinfo = socket.getaddrinfo

    def two_addresses(host, *args, **kwargs):
        if host == "multi.test":
            return [
                (socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", ("127.0.0.1", port)),
                (socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", ("127.0.0.2", port)),
            ]
        return real_getaddrinfo(host, *args, **kwargs)

    monkeypatch.setattr(socket, "getaddrinfo", two_addresses)
    attempt = asyncio.run(TcpProber().probe_once(ProbeTarget("multi.test", port, Protocol.TCP), 1.0))
    assert attempt == ProbeAttempt.failure("connection refused")


def test_tcp_probe_timeout(monkeypatch):
    async def never_connects(host, port):
        await asyncio.sleep(10)

    monkeypatch.setattr(asyncio, "open_connection", never_connects)
    attempt = asyncio.run(TcpProber().probe_once(ProbeTarget("127.0.0.1", 80, Protocol.TCP), 0.05))
    assert attempt == ProbeAttempt.failure("timeout")


def test_tcp_prober_rejects_icmp_target():
    with pytest.raises(ValueError):
        asyncio.run(TcpProber().probe_once(ProbeTarget("h", None, Protocol.ICMP), 1.0))


def test_closed_port_end_to_end_is_down():
    """localhost, a closed port, 3 attempts at 100 ms: nothing succeeds."""
    s = Settings(ports=str(_closed_port()), count=3, timeout_ms=100, once=True)
    prober = ProtocolProber()
    reports = []
    try:
        asyncio.run(ScanController(prober, s).run(["localhost"], reports.append))
    finally:
        prober.close()

    assert len(reports) == 1
    (summary,) = reports[0].results
    assert summary.successful == 0
    assert summary.status is Status.DOWN
    assert summary.avg_latency_ms is None


# ---------------------------------------------------------------- icmp

@pytest.fixture
def icmp_prober():
    p = IcmpProber(ids=IdentifierSource(seed=7), workers=4)
    yield p
    p.close()


def _echo_reply(request, icmp_type=0, seq_offset=0):
    echo = request[scapy.ICMP]
    reply = scapy.IP(src=request[scapy.IP].dst) / scapy.ICMP(
        type=icmp_type, code=1 if icmp_type == 3 else 0, id=echo.id, seq=echo.seq + seq_offset)
    request.sent_time = 100.0
    reply.time = 100.012
    return [(request, reply)], []


def _ping(prober, host="127.0.0.1"):
    return asyncio.run(prober.probe_once(ProbeTarget(host, None, Protocol.ICMP), 0.5))


def test_icmp_matching_echo_reply_succeeds(monkeypatch, icmp_prober):
    monkeypatch.setattr(icmp_mod.scapy, "sr", lambda req, timeout, verbose: _echo_reply(req))
    attempt = _ping(icmp_prober)
    assert attempt.succeeded
    assert attempt.latency_ms == pytest.approx(12.0, abs=0.01)


def test_icmp_reply_with_other_sequence_is_rejected(monkeypatch, icmp_prober):
    monkeypatch.setattr(icmp_mod.scapy, "sr", lambda req, timeout, verbose: _echo_reply(req, seq_offset=1))
    assert _ping(icmp_prober) == ProbeAttempt.failure("reply mismatch")


def test_icmp_unreachable_reply_is_failure(monkeypatch, icmp_prober):
    monkeypatch.setattr(icmp_mod.scapy, "sr", lambda req, timeout, verbose: _echo_reply(req, icmp_type=3))
    assert _ping(icmp_prober).error == "icmp type 3 code 1"


def test_icmp_no_reply_is_timeout(monkeypatch, icmp_prober):
    monkeypatch.setattr(icmp_mod.scapy, "sr", lambda req, timeout, verbose: ([], []))
    assert _ping(icmp_prober) == ProbeAttempt.failure("timeout")


def test_icmp_unresolvable_host(icmp_prober):
    assert _ping(icmp_prober, "no-such-host.invalid").error == "dns resolution failed"


def test_icmp_slow_resolver_is_bounded_by_attempt_timeout(monkeypatch, icmp_prober):
    async def hung_resolver(self, *args, **kwargs):
        await asyncio.sleep(5)

    sent = []
    monkeypatch.setattr(asyncio.base_events.BaseEventLoop, "getaddrinfo", hung_resolver)
    monkeypatch.setattr(icmp_mod.scapy, "sr", lambda req, timeout, verbose: sent.append(req))

    started = time.monotonic()
    attempt = asyncio.run(icmp_prober.probe_once(ProbeTarget("slow.test", None, Protocol.ICMP), 0.1))
    assert time.monotonic() - started < 2
    assert attempt == ProbeAttempt.failure("timeout")
    assert sent == []


def test_icmp_resolution_time_comes_out_of_the_echo_budget(monkeypatch, icmp_prober):
    async def slow_resolver(self, *args, **kwargs):
        await asyncio.sleep(0.2)
        return [(socket.AF_INET, socket.SOCK_RAW, 0, "", ("127.0.0.1", 0))]

    budgets = []

    def no_reply(req, timeout, verbose):
        budgets.append(timeout)
        return [], []

    monkeypatch.setattr(asyncio.base_events.BaseEventLoop, "getaddrinfo", slow_resolver)
    monkeypatch.setattr(icmp_mod.scapy, "sr", no_reply)
    attempt = asyncio.run(icmp_prober.probe_once(ProbeTarget("slow.test", None, Protocol.ICMP), 0.5))
    assert attempt.error == "timeout"
    (budget,) = budgets
    assert 0 < budget <= 0.31


def test_icmp_bpf_privilege_error_is_permission_denied(monkeypatch, icmp_prober):
    def no_bpf(req, timeout, verbose):
        raise Scapy_Exception("Permission denied: could not open /dev/bpf0. Make sure to be running Scapy as root ! (sudo)")

    monkeypatch.setattr(icmp_mod.scapy, "sr", no_bpf)
    assert _ping(icmp_prober) == ProbeAttempt.failure("permission denied")


def test_icmp_other_scapy_error_is_reported(monkeypatch, icmp_prober):
    def broken(req, timeout, verbose):
        raise Scapy_Exception("no route")

    monkeypatch.setattr(icmp_mod.scapy, "sr", broken)
    assert _ping(icmp_prober) == ProbeAttempt.failure("icmp error: no route")


def test_icmp_without_privilege_fails_every_attempt_but_not_the_scan(monkeypatch):
    def no_raw_socket(req, timeout, verbose):
        raise PermissionError(1, "Operation not permitted")

    monkeypatch.setattr(icmp_mod.scapy, "sr", no_raw_socket)
    s = Settings(ports="80", ping=True, count=2, once=True)
    tcp = FakeProber(script={("127.0.0.1", 80, Protocol.TCP): [ProbeAttempt.success(1.0)]})
    icmp = IcmpProber(workers=2)
    prober = ProtocolProber(tcp=tcp, icmp=icmp)
    reports = []
    try:
        asyncio.run(ScanController(prober, s).run(["127.0.0.1"], reports.append))
    finally:
        prober.close()

    tcp_summary, icmp_summary = reports[0].results
    assert tcp_summary.status is Status.UP
    assert icmp_summary.target.protocol is Protocol.ICMP
    assert icmp_summary.successful == 0
    assert icmp_summary.status is Status.DOWN
    assert icmp_summary.error == "permission denied"


def test_identifier_source_pairs_unique_across_threads():
    ids = IdentifierSource(seed=1)
    seen = []
    lock = threading.Lock()

    def grab():
        local = [ids.next_pair() for _ in range(500)]
        with lock:
            seen.extend(local)

    threads = [threading.Thread(target=grab) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 4000
    assert len(set(seen)) == 4000
    assert all(1 <= i <= 0xFFFF and 0 <= s <= 0xFFFF for i, s in seen)


# ---------------------------------------------------------------- dispatch

def test_protocol_prober_routes_by_protocol():
    tcp, icmp = FakeProber(), FakeProber()
    p = ProtocolProber(tcp=tcp, icmp=icmp)
    asyncio.run(p.probe_once(ProbeTarget("h", 22, Protocol.TCP), 1.0))
    asyncio.run(p.probe_once(ProbeTarget("h", None, Protocol.ICMP), 1.0))
    assert [t.protocol for t, _ in tcp.calls] == [Protocol.TCP]
    assert [t.protocol for t, _ in icmp.calls] == [Protocol.ICMP]
