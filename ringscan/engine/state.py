# ringscan/engine/state.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Protocol(str, Enum):
    TCP = "tcp"
    ICMP = "icmp"


class Status(str, Enum):
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class ProbeTarget:
    host: str
    port: Optional[int]
    protocol: Protocol

    def __post_init__(self):
        if self.protocol is Protocol.TCP and self.port is None:
            raise ValueError(f"TCP target {self.host} needs a port")
        if self.protocol is Protocol.ICMP and self.port is not None:
            raise ValueError(f"ICMP target {self.host} cannot carry a port")

    def label(self) -> str:
        if self.protocol is Protocol.ICMP:
            return f"{self.host} (ICMP)"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ProbeAttempt:
    succeeded: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, latency_ms: float) -> "ProbeAttempt":
        return cls(succeeded=True, latency_ms=latency_ms)

    @classmethod
    def failure(cls, error: str) -> "ProbeAttempt":
        return cls(succeeded=False, error=error)


@dataclass
class ProbeResult:
    target: ProbeTarget
    attempt_count: int
    # completion order, not issue order
    attempts: list = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return len(self.attempts) == self.attempt_count


@dataclass(frozen=True)
class TargetSummary:
    target: ProbeTarget
    attempt_count: int
    successful: int
    success_rate: float
    avg_latency_ms: Optional[float]
    response_times: tuple[int, ...]
    status: Status
    error: Optional[str] = None


@dataclass(frozen=True)
class ScanReport:
    timestamp: str               # unix seconds
    results: tuple[TargetSummary, ...]
    cycle: int = 1

    @property
    def all_up(self) -> bool:
        return all(s.status is Status.UP for s in self.results)
