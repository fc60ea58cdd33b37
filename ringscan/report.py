# ringscan/report.py
import json

from ringscan.engine.state import ScanReport, TargetSummary
from ringscan.schemas import HostResultRecord, ScanReportRecord


def summary_to_record(summary: TargetSummary) -> HostResultRecord:
    return {
        "host": summary.target.host,
        "port": summary.target.port,
        "test_type": summary.target.protocol.value,
        "attempts": summary.attempt_count,
        "successful": summary.successful,
        "success_rate": summary.success_rate,
        "avg_response_time_ms": summary.avg_latency_ms,
        "response_times": list(summary.response_times),
        "status": summary.status.value,
        "error": summary.error,
    }


def report_to_dict(report: ScanReport) -> ScanReportRecord:
    return {
        "scan_timestamp": report.timestamp,
        "results": [summary_to_record(s) for s in report.results],
    }


def render_json(report: ScanReport) -> str:
    return json.dumps(report_to_dict(report), indent=2)


def render_text(report: ScanReport) -> str:
    """One line per target, e.g. "[  UP] host:port -> 2/3 successful (avg 1.23 ms) [tcp]"."""
    lines = [f"Summary (cycle {report.cycle}, t={report.timestamp})"]
    for s in report.results:
        line = (f"[{s.status.value.upper():>4}] {s.target.label()} -> "
                f"{s.successful}/{s.attempt_count} successful")
        if s.avg_latency_ms is not None:
            line += f" (avg {s.avg_latency_ms:.2f} ms)"
        line += f" [{s.target.protocol.value}]"
        if s.error:
            line += f" ({s.error})"
        lines.append(line)
    return "\n".join(lines)
