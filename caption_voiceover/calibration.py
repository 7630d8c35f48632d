"""Calibration loop: synthesize, assemble, evaluate, adjust, repeat."""

import logging
from collections import Counter
from dataclasses import dataclass, field, replace

from caption_voiceover.assembly import assemble
from caption_voiceover.config import Settings
from caption_voiceover.constants import (
    ACCURACY_GATE,
    ACCURACY_FAR,
    AUDIBLE_DB,
    MAX_SILENCE_RATIO,
)
from caption_voiceover.context import RunContext
from caption_voiceover.errors import DurationProbeFailure
from caption_voiceover.media import MediaToolkit
from caption_voiceover.models import (
    CalibrationState,
    QualityReport,
    SequenceUnit,
    TimedSegment,
    TimingAnalysis,
)
from caption_voiceover.scheduler import SynthesisScheduler
from caption_voiceover.timing import analyze, analyze_for_target, measure_durations
from caption_voiceover.validator import accuracy

logger = logging.getLogger(__name__)


@dataclass
class CalibrationResult:
    final_path: str
    segments: list[TimedSegment]
    analysis: TimingAnalysis
    units: list[SequenceUnit]
    state: CalibrationState
    reports: list[QualityReport] = field(default_factory=list)
    outcomes: Counter = field(default_factory=Counter)

    @property
    def last_report(self) -> QualityReport:
        return self.reports[-1]


def reference_duration(segments: list[TimedSegment], target: float | None = None) -> float:
    """Duration the output is graded against: the target, else the caption span."""
    if target:
        return target
    return max((s.end for s in segments), default=0.0)


def evaluate_quality(path: str, target: float, toolkit: MediaToolkit) -> QualityReport:
    """Measure the assembled file and apply the quality gate.

    Passes when accuracy > 0.85, mean loudness > -40 dB and the silence
    ratio < 0.9.
    """
    try:
        final_duration = toolkit.probe_duration(path)
    except DurationProbeFailure as e:
        logger.warning("Could not measure final output: %s", e)
        final_duration = 0.0

    timing_accuracy = accuracy(final_duration, target)
    mean_db, silence_ratio = toolkit.analyze_levels(path)
    audible = mean_db > AUDIBLE_DB
    passed = timing_accuracy > ACCURACY_GATE and audible and silence_ratio < MAX_SILENCE_RATIO

    return QualityReport(
        final_duration=final_duration,
        target=target,
        accuracy=timing_accuracy,
        mean_volume_db=mean_db,
        audible=audible,
        silence_ratio=silence_ratio,
        passed=passed,
    )


def adjust_state(state: CalibrationState, report: QualityReport, settings: Settings) -> list[str]:
    """Nudge the global scales after a failed gate. Returns what changed."""
    changes = []
    if report.accuracy < ACCURACY_GATE:
        step = settings.speed_step_large if report.accuracy < ACCURACY_FAR else settings.speed_step
        state.speed_scale *= step
        changes.append(f"speed x{step:g}")
    if not report.audible:
        state.volume_scale *= settings.volume_step
        changes.append(f"volume x{settings.volume_step:g}")
    return changes


def run_calibration(
    segments: list[TimedSegment],
    context: RunContext,
    target: float | None = None,
) -> CalibrationResult:
    """Run up to settings.max_iterations passes over the segments.

    Stops at the first pass whose output passes the quality gate. The last
    assembled file is kept whatever its quality.
    """
    settings = context.settings
    state = CalibrationState(length_scale=settings.length_scale)
    scheduler = SynthesisScheduler(context)
    reference = reference_duration(segments, target)
    reports = []
    result = None

    for iteration in range(1, settings.max_iterations + 1):
        state.iteration = iteration
        print(f"Pass {iteration}/{settings.max_iterations} "
              f"(speed x{state.speed_scale:.3f}, volume x{state.volume_scale:.3f})")

        working = [
            replace(s, artifact=None, actual_duration=None, leading_silence=0.0)
            for s in segments
        ]
        outcomes = scheduler.synthesize_all(working, state)
        measure_durations(working, context.toolkit, workers=settings.media_concurrency)

        if target:
            analysis = analyze_for_target(working, target)
        else:
            analysis = analyze(working, preserve_threshold=settings.preserve_threshold)

        final, units = assemble(working, analysis, context.toolkit, context.project_dir)
        report = evaluate_quality(final, reference, context.toolkit)
        reports.append(report)
        result = CalibrationResult(final, working, analysis, units, state, reports, outcomes)

        print(f"  Accuracy {report.accuracy:.1%}, mean {report.mean_volume_db:.1f} dB, "
              f"silence {report.silence_ratio:.0%}: {'pass' if report.passed else 'fail'}")
        if report.passed:
            break
        if iteration < settings.max_iterations:
            changes = adjust_state(state, report, settings)
            logger.info("Quality gate failed; adjusting: %s", ", ".join(changes) or "nothing")

    return result
