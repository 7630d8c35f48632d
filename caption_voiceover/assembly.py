"""Assemble speech clips and compensated silences into the final track."""

import logging
import os
from dataclasses import replace

from caption_voiceover.artifacts import final_path, gap_filename, manifest_path, units_dir
from caption_voiceover.constants import (
    MIN_GAP,
    MIN_SILENCE_UNIT,
    MISSING_AUDIO_MIN,
    RETRY_SILENCE,
)
from caption_voiceover.errors import AssemblyFailure
from caption_voiceover.media import MediaToolkit
from caption_voiceover.models import AnalysisMode, SequenceUnit, TimedSegment, TimingAnalysis

logger = logging.getLogger(__name__)


def compensate(segments: list[TimedSegment], analysis: TimingAnalysis) -> list[float]:
    """Set leading_silence on every segment and return the values.

    The first segment keeps its caption start (plus the per-gap shift and a
    0.05s floor in target mode); later ones get their caption gap adjusted by
    the analysis strategy.
    """
    silences = []
    for i, segment in enumerate(segments):
        if i == 0:
            silence = segment.start
            if analysis.mode is AnalysisMode.TARGET:
                silence = max(MIN_GAP, silence + analysis.per_gap)
        else:
            base_gap = segment.start - segments[i - 1].end
            silence = analysis.strategy.compensate(base_gap, analysis.per_gap)
        segment.leading_silence = max(0.0, silence)
        silences.append(segment.leading_silence)
    return silences


def _missing_audio_duration(segment: TimedSegment, mode: AnalysisMode) -> float:
    if mode is AnalysisMode.TARGET:
        return max(MISSING_AUDIO_MIN, segment.expected_duration)
    return segment.expected_duration


def build_sequence(segments: list[TimedSegment], analysis: TimingAnalysis) -> list[SequenceUnit]:
    """Ordered silence/audio units; call compensate() first.

    A segment without an artifact is replaced by silence so the track never
    comes out shorter than its captions.
    """
    units = []
    for segment in segments:
        if segment.leading_silence >= MIN_SILENCE_UNIT:
            units.append(SequenceUnit("silence", segment.leading_silence, segment_index=segment.index))

        if segment.artifact and os.path.exists(segment.artifact):
            units.append(SequenceUnit(
                "audio",
                segment.actual_duration or 0.0,
                path=segment.artifact,
                segment_index=segment.index,
            ))
        else:
            duration = _missing_audio_duration(segment, analysis.mode)
            logger.warning("Segment %d has no audio; filling %.3fs of silence", segment.index, duration)
            units.append(SequenceUnit("silence", duration, segment_index=segment.index))
    return units


def sequence_duration(units: list[SequenceUnit]) -> float:
    return sum(unit.duration for unit in units)


def materialize(units: list[SequenceUnit], toolkit: MediaToolkit, directory: str) -> list[SequenceUnit]:
    """Write a clip for every silence unit. Returns units with paths set.

    A failed clip is retried once at 0.1s; a second failure raises
    AssemblyFailure.
    """
    result = []
    for position, unit in enumerate(units):
        if unit.kind != "silence":
            result.append(unit)
            continue

        path = os.path.join(directory, gap_filename(position))
        try:
            toolkit.generate_silence(path, unit.duration)
        except AssemblyFailure as e:
            logger.warning("Silence unit %d failed (%s); retrying with %.1fs", position, e, RETRY_SILENCE)
            try:
                toolkit.generate_silence(path, RETRY_SILENCE)
            except AssemblyFailure as retry_error:
                raise AssemblyFailure(
                    f"Could not generate silence unit {position}: {retry_error}"
                ) from retry_error
            unit = replace(unit, duration=RETRY_SILENCE)
        result.append(replace(unit, path=path))
    return result


def _quote(name: str) -> str:
    # concat demuxer quoting: close, escaped quote, reopen
    return "'" + name.replace("'", "'\\''") + "'"


def write_manifest(units: list[SequenceUnit], path: str) -> str:
    """Write the concat manifest, one `file '<name>'` line per unit."""
    base = os.path.dirname(os.path.abspath(path))
    lines = []
    for unit in units:
        if unit.path is None:
            raise AssemblyFailure(f"Unit for segment {unit.segment_index} was never materialized")
        name = os.path.relpath(os.path.abspath(unit.path), base)
        lines.append(f"file {_quote(name)}")
    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")
    return path


def assemble(
    segments: list[TimedSegment],
    analysis: TimingAnalysis,
    toolkit: MediaToolkit,
    project_dir: str,
) -> tuple[str, list[SequenceUnit]]:
    """Compensate, materialize and concatenate into project_dir/final.

    Returns (final file path, materialized units).
    """
    if not segments:
        raise AssemblyFailure("Nothing to assemble")

    compensate(segments, analysis)
    units = build_sequence(segments, analysis)
    units = materialize(units, toolkit, units_dir(project_dir))

    manifest = write_manifest(units, manifest_path(project_dir))
    output = final_path(project_dir)
    toolkit.concatenate(manifest, output)

    logger.info("Assembled %d units (%.3fs planned) into %s", len(units), sequence_duration(units), output)
    return output, units
