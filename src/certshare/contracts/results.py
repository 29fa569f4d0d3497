"""Operation outcomes and results.

These types answer: "What did an operation produce?"

- IOResult is returned by best-effort writes; callers decide whether to log
  and continue.
- RecordOutcome is the terminal state of one participant in one cycle.
- CycleStats aggregates the outcomes of one cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from certshare.contracts.enums import ErrorReason, OutcomeKind, ResolutionSource, SkipReason


@dataclass(frozen=True)
class IOResult:
    """Result of a best-effort external write.

    Use the factory methods to create instances.
    """

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> IOResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: BaseException | str) -> IOResult:
        return cls(ok=False, error=str(error))


@dataclass(frozen=True)
class RecordOutcome:
    """Terminal state of one participant in one cycle.

    Exactly one of ``skip_reason``/``error_reason`` is set for SKIPPED/ERROR
    outcomes; both are None for GRANTED and DRY_RUN.
    """

    row: int
    kind: OutcomeKind
    skip_reason: SkipReason | None = None
    error_reason: ErrorReason | None = None
    folder_id: str | None = None
    source: ResolutionSource | None = None
    message: str = ""
    elapsed_ms: int = 0

    @property
    def is_success(self) -> bool:
        return self.kind in (OutcomeKind.GRANTED, OutcomeKind.DRY_RUN)


@dataclass
class CycleStats:
    """Counters for one processing cycle."""

    total: int = 0
    done: int = 0
    skipped: int = 0
    errors: int = 0
    outcomes: list[RecordOutcome] = field(default_factory=list)

    def record(self, outcome: RecordOutcome) -> None:
        self.total += 1
        self.outcomes.append(outcome)
        if outcome.is_success:
            self.done += 1
        elif outcome.kind == OutcomeKind.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.done / self.total * 100
