# ringscan/engine/expander.py
from typing import Sequence

from ringscan.config import ConfigError
from ringscan.engine.state import ProbeTarget, Protocol

MIN_PORT = 1
MAX_PORT = 65535


def _parse_port(token: str, spec: str) -> int:
    if not (token.isascii() and token.isdigit()):
        raise ConfigError(f"invalid port {token!r} in port spec {spec!r}")
    port = int(token)
    if not MIN_PORT <= port <= MAX_PORT:
        raise ConfigError(f"port {port} out of range {MIN_PORT}-{MAX_PORT} in port spec {spec!r}")
    return port


def parse_ports(port_spec: str) -> list[int]:
    """
    Parse "80,443,8000-8100" into a flat port list.
    Ranges are inclusive; order and duplicates are preserved.
    An empty or blank spec yields an empty list.
    """
    if not port_spec or not port_spec.strip():
        return []

    ports: list[int] = []
    for item in port_spec.split(","):
        item = item.strip()
        if "-" in item:
            low_s, _, high_s = item.partition("-")
            low = _parse_port(low_s.strip(), port_spec)
            high = _parse_port(high_s.strip(), port_spec)
            if low > high:
                raise ConfigError(f"port range {item!r} has low > high")
            ports.extend(range(low, high + 1))
        else:
            ports.append(_parse_port(item, port_spec))
    return ports


def expand_targets(hosts: Sequence[str], port_spec: str, icmp_enabled: bool) -> list[ProbeTarget]:
    if not hosts:
        raise ConfigError("at least one host is required")
    for host in hosts:
        if not host or not host.strip():
            raise ConfigError("host names must not be blank")

    ports = parse_ports(port_spec)
    if not ports and not icmp_enabled:
        raise ConfigError("at least one port or ICMP ping is required")

    targets: list[ProbeTarget] = []
    for host in hosts:
        host = host.strip()
        for port in ports:
            targets.append(ProbeTarget(host, port, Protocol.TCP))
        if icmp_enabled:
            targets.append(ProbeTarget(host, None, Protocol.ICMP))
    return targets
