# ringscan/config.py
from dataclasses import dataclass
from typing import Optional


class ConfigError(ValueError):
    """Invalid scan configuration; raised before any probing starts."""


@dataclass
class Settings:
    ports: str = "80"
    count: int = 3                 # attempts per target
    timeout_ms: int = 2000         # per TCP attempt
    ping: bool = False
    ping_timeout_ms: int = 1000    # per ICMP attempt
    once: bool = False

    # continuous mode
    interval_s: float = 5.0
    max_cycles: Optional[int] = None   # None/0 -> run until stopped

    # fan-out tuning
    max_concurrency: Optional[int] = None   # None/0 -> unbounded
    icmp_workers: int = 32                  # threads for blocking scapy sends

    def __post_init__(self):
        if self.count < 1:
            raise ConfigError(f"count must be >= 1, got {self.count}")
        if self.timeout_ms <= 0:
            raise ConfigError(f"timeout must be > 0 ms, got {self.timeout_ms}")
        if self.ping_timeout_ms <= 0:
            raise ConfigError(f"ping timeout must be > 0 ms, got {self.ping_timeout_ms}")
        if self.interval_s < 0:
            raise ConfigError(f"interval must be >= 0 s, got {self.interval_s}")
        if self.max_concurrency is not None and self.max_concurrency < 0:
            raise ConfigError(f"max concurrency must be >= 0, got {self.max_concurrency}")
        if self.icmp_workers < 1:
            raise ConfigError(f"icmp workers must be >= 1, got {self.icmp_workers}")
        if self.max_cycles is not None and self.max_cycles < 0:
            raise ConfigError(f"cycles must be >= 0, got {self.max_cycles}")

    @property
    def tcp_timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def icmp_timeout_s(self) -> float:
        return self.ping_timeout_ms / 1000.0
