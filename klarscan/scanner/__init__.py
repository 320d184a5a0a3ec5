"""Scan orchestration and vulnerability analysis."""

from klarscan.scanner.clair_client import ClairClient, VulnerabilityAnalyzer
from klarscan.scanner.result_aggregator import aggregate
from klarscan.scanner.scan_orchestrator import ScanOrchestrator

__all__ = [
    "ClairClient",
    "ScanOrchestrator",
    "VulnerabilityAnalyzer",
    "aggregate",
]
