"""Error types shared by the metric derivation passes.

Missing related facts (a customer without orders, a product without reviews)
are not errors: they resolve to explicit defaults inside the aggregator and
classifiers. Only the conditions below abort a computation pass.
"""

from __future__ import annotations

from datetime import date


class ConfigMissing(KeyError):
    """A required classification threshold is not defined.

    Raised by configuration providers. Fatal for the pass that requested it;
    the previously published snapshot keeps serving.
    """

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Configuration key not defined: {self.name!r}"


class InconsistentSnapshotError(RuntimeError):
    """Two steps of one pass observed different reference dates."""

    def __init__(
        self, stage: str, expected: date | None, observed: date | None
    ) -> None:
        super().__init__(
            f"Reference date mismatch in {stage}: pass started with "
            f"{expected}, step observed {observed}"
        )
        self.stage = stage
        self.expected = expected
        self.observed = observed


def ensure_same_reference_date(
    stage: str, expected: date | None, observed: date | None
) -> None:
    """Raise InconsistentSnapshotError unless both reference dates match."""
    if expected != observed:
        raise InconsistentSnapshotError(stage, expected, observed)
