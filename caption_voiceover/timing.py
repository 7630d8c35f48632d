"""Timing analysis: measure clips, compare with caption timing, pick a strategy."""

import logging
import os
from concurrent.futures import ThreadPoolExecutor

from caption_voiceover.constants import (
    PRESERVE_THRESHOLD,
    EXPAND_MAX_PER_GAP,
    REDUCE_MAX_PER_GAP,
    TARGET_MAX_PER_GAP,
    TARGET_ERROR_TOLERANCE,
    EXPECTED_ERROR_TOLERANCE,
    EXPECTED_TARGET_SPREAD,
    HYBRID_TARGET_WEIGHT,
)
from caption_voiceover.errors import DurationProbeFailure, InputError
from caption_voiceover.media import MediaToolkit
from caption_voiceover.models import AnalysisMode, Strategy, TimedSegment, TimingAnalysis

logger = logging.getLogger(__name__)


def measure_durations(segments: list[TimedSegment], toolkit: MediaToolkit, workers: int = 2) -> None:
    """Probe every existing artifact and record actual_duration in place.

    A failed probe counts as 0.0 seconds. Segments without an artifact keep
    actual_duration = None.
    """
    def probe(segment):
        if not segment.artifact or not os.path.exists(segment.artifact):
            segment.actual_duration = None
            return
        try:
            segment.actual_duration = toolkit.probe_duration(segment.artifact)
        except DurationProbeFailure as e:
            logger.warning("Segment %d: %s; counting it as 0.0s", segment.index, e)
            segment.actual_duration = 0.0

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        list(executor.map(probe, segments))


def _total_actual(segments: list[TimedSegment]) -> float:
    return sum(s.actual_duration for s in segments if s.actual_duration is not None)


def analyze(segments: list[TimedSegment], preserve_threshold: float = PRESERVE_THRESHOLD) -> TimingAnalysis:
    """Mode A: compare the summed cue durations with the summed clip durations.

    |difference| below preserve_threshold keeps the caption gaps; a positive
    difference stretches every gap by up to 0.5s, a negative one shrinks
    every gap by up to 0.2s.
    """
    total_expected = sum(s.expected_duration for s in segments)
    total_actual = _total_actual(segments)
    difference = total_expected - total_actual
    gap_count = max(0, len(segments) - 1)
    raw_per_gap = difference / gap_count if gap_count else 0.0

    if abs(difference) < preserve_threshold:
        strategy, per_gap = Strategy.PRESERVE, 0.0
    elif difference > 0:
        strategy, per_gap = Strategy.EXPAND, min(raw_per_gap, EXPAND_MAX_PER_GAP)
    else:
        strategy, per_gap = Strategy.PROPORTIONAL_REDUCE, max(raw_per_gap, REDUCE_MAX_PER_GAP)

    analysis = TimingAnalysis(
        mode=AnalysisMode.PLAIN,
        strategy=strategy,
        total_expected=total_expected,
        total_actual=total_actual,
        difference=difference,
        gap_count=gap_count,
        per_gap=per_gap,
    )
    logger.info(
        "Timing: expected %.3fs, actual %.3fs, diff %.3fs, %d gaps, %+.3fs/gap, %s",
        total_expected, total_actual, difference, gap_count, per_gap, strategy.label,
    )
    return analysis


def analyze_for_target(segments: list[TimedSegment], target: float) -> TimingAnalysis:
    """Mode B: steer the output toward an explicit target duration.

    The caption span is the last cue's end time. Per-gap compensation is
    clamped to ±0.5s.
    """
    if target <= 0:
        raise InputError(f"Target duration must be positive, got {target}")
    if not segments:
        raise InputError("Cannot analyze timing without segments")

    total_expected = segments[-1].end
    total_actual = _total_actual(segments)
    target_diff = target - total_actual
    expected_diff = total_expected - total_actual
    gap_count = max(1, len(segments))

    target_err = abs(target_diff) / target
    expected_err = abs(expected_diff) / total_expected if total_expected > 0 else float("inf")

    if target_err <= TARGET_ERROR_TOLERANCE:
        strategy, raw_per_gap = Strategy.USE_TARGET, target_diff / gap_count
    elif expected_err <= EXPECTED_ERROR_TOLERANCE and abs(target - total_expected) <= EXPECTED_TARGET_SPREAD:
        strategy, raw_per_gap = Strategy.USE_EXPECTED, expected_diff / gap_count
    else:
        weighted = HYBRID_TARGET_WEIGHT * target_diff + (1 - HYBRID_TARGET_WEIGHT) * expected_diff
        strategy, raw_per_gap = Strategy.WEIGHTED_HYBRID, weighted / gap_count

    per_gap = max(-TARGET_MAX_PER_GAP, min(TARGET_MAX_PER_GAP, raw_per_gap))

    analysis = TimingAnalysis(
        mode=AnalysisMode.TARGET,
        strategy=strategy,
        total_expected=total_expected,
        total_actual=total_actual,
        difference=expected_diff,
        gap_count=gap_count,
        per_gap=per_gap,
        target=target,
        target_difference=target_diff,
    )
    logger.info(
        "Timing vs target %.3fs: captions %.3fs, actual %.3fs, %+.3fs/gap, %s",
        target, total_expected, total_actual, per_gap, strategy.label,
    )
    return analysis
