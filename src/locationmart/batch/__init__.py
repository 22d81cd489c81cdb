from .runner import (
    BatchState,
    FailureReason,
    BatchFailure,
    BatchItem,
    BatchProgress,
    BatchRun,
    BatchRunner,
)
from .export import results_frame, features_frame, write_csv

__all__ = [
    "BatchState",
    "FailureReason",
    "BatchFailure",
    "BatchItem",
    "BatchProgress",
    "BatchRun",
    "BatchRunner",
    "results_frame",
    "features_frame",
    "write_csv",
]
