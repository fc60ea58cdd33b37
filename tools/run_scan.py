# tools/run_scan.py
# Usage examples:
#   python3 -m tools.run_scan google.com
#   python3 -m tools.run_scan google.com -p 80,443,22
#   python3 -m tools.run_scan google.com cloudflare.com --ping
#   python3 -m tools.run_scan example.com -p 1000-2000 --once --json
#   sudo python3 -m tools.run_scan api.example.com --ping -t 5000 -c 5
#
# Exit code: 0 when every target in the last report is up, 1 when any is down,
# 2 on a bad configuration, 130 when interrupted before the first report.

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from ringscan.config import ConfigError, Settings
from ringscan.engine.controller import ScanController
from ringscan.prober.dispatch import ProtocolProber
from ringscan.report import render_json, render_text

EXIT_ALL_UP = 0
EXIT_SOME_DOWN = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def settings_from_args(args) -> Settings:
    return Settings(
        ports=args.ports,
        count=args.count,
        timeout_ms=args.timeout,
        ping=args.ping,
        ping_timeout_ms=args.ping_timeout,
        once=args.once,
        interval_s=args.interval,
        max_cycles=args.cycles or None,
        max_concurrency=args.max_concurrency or None,
        icmp_workers=args.icmp_workers,
    )


class Printer:
    """Writes each report to stdout and remembers the last one for the exit code."""

    def __init__(self, as_json: bool, quiet: bool, continuous: bool, interval_s: float, max_cycles=None):
        self.as_json = as_json
        self.quiet = quiet
        self.continuous = continuous
        self.interval_s = interval_s
        self.max_cycles = max_cycles
        self.last = None

    def banner(self, hosts, settings: Settings):
        if self.as_json or self.quiet:
            return
        parts = [f"Scanning hosts: [{', '.join(hosts)}]"]
        if settings.ports.strip():
            parts.append(f"ports: [{settings.ports}]")
        if settings.ping:
            parts.append("ICMP ping: enabled")
        print(", ".join(parts))

    def __call__(self, report):
        self.last = report
        if self.as_json:
            print(render_json(report), flush=True)
            return
        print(render_text(report), flush=True)
        last_cycle = self.max_cycles and report.cycle >= self.max_cycles
        if self.continuous and not self.quiet and not last_cycle:
            print(f"\nWaiting {self.interval_s:g} seconds before next scan (Ctrl-C to stop)...\n", flush=True)


async def _run(ctrl: ScanController, hosts, emit) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # not available on Windows event loops; KeyboardInterrupt still applies there
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)
    return await ctrl.run(hosts, emit, stop_event=stop)


def build_argparser():
    ap = argparse.ArgumentParser(
        description="Parallel TCP connect / ICMP echo reachability scanner",
    )
    ap.add_argument("hosts", nargs="+", help="One or more hostnames or IPs")
    ap.add_argument("-p", "--ports", default="80",
                    help="Ports, comma-separated or ranges (e.g. 80,443,1000-1005)")
    ap.add_argument("-c", "--count", type=int, default=3, help="Attempts per host+port")
    ap.add_argument("-t", "--timeout", type=int, default=2000, help="TCP connect timeout per attempt (ms)")
    ap.add_argument("-q", "--quiet", action="store_true", help="Suppress banner and wait messages")
    ap.add_argument("-j", "--json", action="store_true", help="Emit JSON reports")
    ap.add_argument("-i", "--once", action="store_true", help="Run one cycle instead of continuously")
    ap.add_argument("--ping", action="store_true", help="Also send ICMP echo (needs root/CAP_NET_RAW)")
    ap.add_argument("--ping-timeout", type=int, default=1000, help="ICMP echo timeout per attempt (ms)")
    ap.add_argument("--interval", type=float, default=5.0, help="Seconds between cycles in continuous mode")
    ap.add_argument("--cycles", type=int, default=0, help="Stop after N cycles (0 = until interrupted)")
    ap.add_argument("--max-concurrency", type=int, default=0,
                    help="Cap on simultaneous attempts (0 = unbounded)")
    ap.add_argument("--icmp-workers", type=int, default=32, help="Threads used for ICMP sends")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    return ap


def main(argv=None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        settings = settings_from_args(args)
        ctrl = ScanController(ProtocolProber(icmp_workers=settings.icmp_workers), settings)
        ctrl.targets(args.hosts)
    except ConfigError as e:
        print(f"{ap.prog}: error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    printer = Printer(args.json, args.quiet, continuous=not settings.once,
                      interval_s=settings.interval_s, max_cycles=settings.max_cycles)
    printer.banner(args.hosts, settings)
    try:
        asyncio.run(_run(ctrl, args.hosts, printer))
    except KeyboardInterrupt:
        pass
    finally:
        ctrl.prober.close()

    if printer.last is None:
        return EXIT_INTERRUPTED
    return EXIT_ALL_UP if printer.last.all_up else EXIT_SOME_DOWN


if __name__ == "__main__":
    sys.exit(main())
