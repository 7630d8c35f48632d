"""Final duration check: accuracy tiers for the finished track."""

import logging
from dataclasses import dataclass

from caption_voiceover.constants import VALIDATION_TIERS, SUGGESTION_MARGIN

logger = logging.getLogger(__name__)

UNSATISFACTORY = "unsatisfactory"


@dataclass(frozen=True)
class ValidationResult:
    tier: str
    final_duration: float
    expected: float
    target: float | None
    accuracy_expected: float
    accuracy_target: float | None
    accuracy: float              # best of the two
    suggestion: str = ""

    def to_dict(self) -> dict:
        return {
            "tier": self.tier,
            "final_duration": round(self.final_duration, 3),
            "expected": round(self.expected, 3),
            "target": self.target,
            "accuracy_expected": round(self.accuracy_expected, 4),
            "accuracy_target": None if self.accuracy_target is None else round(self.accuracy_target, 4),
            "accuracy": round(self.accuracy, 4),
            "suggestion": self.suggestion,
        }


def accuracy(final_duration: float, reference: float) -> float:
    """1 - relative error, floored at 0. A non-positive reference counts as exact."""
    if reference <= 0:
        return 1.0
    return max(0.0, 1.0 - abs(final_duration - reference) / reference)


def classify(value: float) -> str:
    for minimum, tier in VALIDATION_TIERS:
        if value >= minimum:
            return tier
    return UNSATISFACTORY


def validate_duration(final_duration: float, expected: float, target: float | None = None) -> ValidationResult:
    """Grade the final duration against the caption span and optional target.

    Never raises for a bad result; it only reports.
    """
    accuracy_expected = accuracy(final_duration, expected)
    accuracy_target = accuracy(final_duration, target) if target else None
    best = max(accuracy_expected, accuracy_target or 0.0)
    tier = classify(best)

    suggestion = ""
    reference = target if target else expected
    if tier == UNSATISFACTORY:
        if final_duration > reference + SUGGESTION_MARGIN:
            suggestion = "Output too long: raise speed or shorten silences"
        elif final_duration < reference - SUGGESTION_MARGIN:
            suggestion = "Output too short: lengthen silences or lower speed"

    result = ValidationResult(
        tier=tier,
        final_duration=final_duration,
        expected=expected,
        target=target,
        accuracy_expected=accuracy_expected,
        accuracy_target=accuracy_target,
        accuracy=best,
        suggestion=suggestion,
    )
    log = logger.warning if tier == UNSATISFACTORY else logger.info
    log("Final duration %.3fs vs %.3fs: %.2f%% (%s)", final_duration, reference, best * 100, tier)
    return result
