from typing import Literal, TypedDict, Optional

TestType = Literal["tcp", "icmp"]
StatusName = Literal["up", "down"]

class HostResultRecord(TypedDict):
    host: str
    port: Optional[int]
    test_type: TestType
    attempts: int
    successful: int
    success_rate: float
    avg_response_time_ms: Optional[float]
    response_times: list[int]  # successful attempts only, completion order
    status: StatusName
    error: Optional[str]

class ScanReportRecord(TypedDict):
    scan_timestamp: str
    results: list[HostResultRecord]
