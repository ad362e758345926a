"""Domain models for the customer export tool."""

from .customer_report import CustomerReport, ExportedFile, RunSummary
from .export_job import (
    DownloadAttempt,
    DownloadCandidate,
    DownloadOutcome,
    ExportRun,
    JobState,
    PollObservation,
    PollResult,
)
from .export_request import DataQuery, ExportColumn, ExportRequest, build_customer_request

__all__ = [
    # Request models
    "DataQuery",
    "ExportColumn",
    "ExportRequest",
    "build_customer_request",
    # Job lifecycle models
    "DownloadAttempt",
    "DownloadCandidate",
    "DownloadOutcome",
    "ExportRun",
    "JobState",
    "PollObservation",
    "PollResult",
    # Results
    "CustomerReport",
    "ExportedFile",
    "RunSummary",
]
