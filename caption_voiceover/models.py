"""Data models for caption voiceover production."""

from dataclasses import dataclass
from enum import Enum

from caption_voiceover.constants import MIN_GAP, MIN_REDUCED_GAP, SPEED_RANGE


@dataclass
class TimedSegment:
    index: int
    start: float                          # seconds, from the caption timestamp
    end: float
    raw_text: str
    text: str                             # normalized, what gets synthesized
    artifact: str | None = None           # path of the segment's audio file
    actual_duration: float | None = None  # measured, unset until probed
    leading_silence: float = 0.0          # compensated silence before this segment

    @property
    def expected_duration(self) -> float:
        return self.end - self.start


class AnalysisMode(Enum):
    PLAIN = "plain"      # no explicit target: expected = sum of cue durations
    TARGET = "target"    # explicit target: expected = last cue end


def _keep_gap(base_gap: float, per_gap: float) -> float:
    return max(MIN_GAP, base_gap)


def _shift_gap(base_gap: float, per_gap: float) -> float:
    return max(MIN_GAP, base_gap + per_gap)


def _shrink_gap(base_gap: float, per_gap: float) -> float:
    return max(MIN_REDUCED_GAP, base_gap - abs(per_gap))


class Strategy(Enum):
    """Gap compensation strategy chosen by the timing analysis."""

    PRESERVE = ("preserve", AnalysisMode.PLAIN, _keep_gap)
    EXPAND = ("expand", AnalysisMode.PLAIN, _shift_gap)
    PROPORTIONAL_REDUCE = ("proportional_reduce", AnalysisMode.PLAIN, _shrink_gap)
    USE_TARGET = ("use_target", AnalysisMode.TARGET, _shift_gap)
    USE_EXPECTED = ("use_expected", AnalysisMode.TARGET, _shift_gap)
    WEIGHTED_HYBRID = ("weighted_hybrid", AnalysisMode.TARGET, _shift_gap)

    def __init__(self, label, mode, compensator):
        self.label = label
        self.mode = mode
        self._compensator = compensator

    def compensate(self, base_gap: float, per_gap: float) -> float:
        """Silence to put between two segments whose captions are base_gap apart."""
        return self._compensator(base_gap, per_gap)


@dataclass(frozen=True)
class TimingAnalysis:
    mode: AnalysisMode
    strategy: Strategy
    total_expected: float
    total_actual: float
    difference: float
    gap_count: int
    per_gap: float
    target: float | None = None
    target_difference: float | None = None

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "strategy": self.strategy.label,
            "total_expected": round(self.total_expected, 3),
            "total_actual": round(self.total_actual, 3),
            "difference": round(self.difference, 3),
            "gap_count": self.gap_count,
            "per_gap": round(self.per_gap, 4),
            "target": self.target,
            "target_difference": None if self.target_difference is None
            else round(self.target_difference, 3),
        }


@dataclass(frozen=True)
class SequenceUnit:
    kind: str                        # "silence" or "audio"
    duration: float                  # seconds; measured length for audio units
    path: str | None = None          # set once materialized
    segment_index: int | None = None


@dataclass
class CalibrationState:
    speed_scale: float = 1.0
    volume_scale: float = 1.0
    length_scale: float = 1.0
    iteration: int = 0

    def effective_speed(self, base_speed: float) -> float:
        low, high = SPEED_RANGE
        speed = base_speed * self.speed_scale / self.length_scale
        return min(high, max(low, speed))


@dataclass(frozen=True)
class QualityReport:
    final_duration: float
    target: float
    accuracy: float
    mean_volume_db: float
    audible: bool
    silence_ratio: float
    passed: bool

    def to_dict(self) -> dict:
        return {
            "final_duration": round(self.final_duration, 3),
            "target": round(self.target, 3),
            "accuracy": round(self.accuracy, 4),
            "mean_volume_db": round(self.mean_volume_db, 2),
            "audible": self.audible,
            "silence_ratio": round(self.silence_ratio, 3),
            "passed": self.passed,
        }
