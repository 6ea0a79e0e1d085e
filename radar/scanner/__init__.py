"""Scanner package — probe, throttle, extract."""

from radar.scanner.extractor import extract
from radar.scanner.models import ExtractionJob, ProbeOutcome, Record, ScanResult, Target
from radar.scanner.pipeline import run_scan
from radar.scanner.prober import probe
from radar.scanner.rate_limiter import Permit, RateLimiter

__all__ = [
    "probe",
    "extract",
    "run_scan",
    "RateLimiter",
    "Permit",
    "Target",
    "ProbeOutcome",
    "ExtractionJob",
    "Record",
    "ScanResult",
]
