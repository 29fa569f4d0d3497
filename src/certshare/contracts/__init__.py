"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings are NOT re-exported here - import them from certshare.core.config.
"""

from certshare.contracts.enums import (
    ErrorReason,
    OutcomeKind,
    ResolutionSource,
    ShareStatus,
    SkipReason,
    WorkerState,
)
from certshare.contracts.errors import (
    ErrorDetails,
    MonitorAlreadyRunning,
    SetupError,
    describe_error,
    friendly_reason,
    is_retryable_rate_limit,
    tag_error,
)
from certshare.contracts.records import AUX_COLUMNS, ColumnMap, Participant
from certshare.contracts.results import CycleStats, IOResult, RecordOutcome

__all__ = [
    "AUX_COLUMNS",
    "ColumnMap",
    "CycleStats",
    "ErrorDetails",
    "ErrorReason",
    "IOResult",
    "MonitorAlreadyRunning",
    "OutcomeKind",
    "Participant",
    "RecordOutcome",
    "ResolutionSource",
    "SetupError",
    "ShareStatus",
    "SkipReason",
    "WorkerState",
    "describe_error",
    "friendly_reason",
    "is_retryable_rate_limit",
    "tag_error",
]
