"""Tests for assembly module (Layer 2b)."""

import threading
from unittest.mock import MagicMock

import pytest

from caption_voiceover.assembly import (
    assemble,
    build_sequence,
    compensate,
    materialize,
    sequence_duration,
    write_manifest,
)
from caption_voiceover.errors import AssemblyFailure
from caption_voiceover.models import (
    AnalysisMode,
    SequenceUnit,
    Strategy,
    TimedSegment,
    TimingAnalysis,
)
from caption_voiceover.timing import analyze, analyze_for_target

from conftest import FakeToolkit, wav_seconds, write_tone


def _analysis(strategy, per_gap=0.0):
    mode = strategy.mode
    return TimingAnalysis(
        mode=mode, strategy=strategy, total_expected=0.0, total_actual=0.0,
        difference=0.0, gap_count=1, per_gap=per_gap,
        target=10.0 if mode is AnalysisMode.TARGET else None,
    )


def _with_audio(tmp_path, segments, durations):
    """Write a tone for each segment and record it as measured."""
    for seg, seconds in zip(segments, durations):
        seg.artifact = write_tone(tmp_path / f"segment_{seg.index:03d}.wav", seconds)
        seg.actual_duration = seconds
    return segments


# --- Compensation ---

def test_first_segment_keeps_start_in_plain_mode():
    """Segment 0 silence equals its caption start in Mode A."""
    segs = [TimedSegment(0, 1.25, 2.0, "a", "a")]
    assert compensate(segs, _analysis(Strategy.PRESERVE)) == [1.25]


def test_first_segment_floor_in_target_mode():
    """Segment 0 gets start + per_gap, floored at 0.05s, in Mode B."""
    segs = [TimedSegment(0, 0.0, 2.0, "a", "a")]
    assert compensate(segs, _analysis(Strategy.USE_TARGET, -0.3)) == [0.05]
    segs = [TimedSegment(0, 1.0, 2.0, "a", "a")]
    assert compensate(segs, _analysis(Strategy.USE_TARGET, 0.25)) == [1.25]


@pytest.mark.parametrize("strategy, per_gap, expected", [
    (Strategy.PRESERVE, 0.0, 0.5),
    (Strategy.EXPAND, 0.5, 1.0),
    (Strategy.PROPORTIONAL_REDUCE, -0.2, 0.3),
    (Strategy.USE_TARGET, -0.3, 0.2),
    (Strategy.USE_EXPECTED, 0.1, 0.6),
    (Strategy.WEIGHTED_HYBRID, -0.5, 0.05),
])
def test_gap_formulas(strategy, per_gap, expected):
    """Each strategy adjusts a 0.5s caption gap by its own formula."""
    segs = [TimedSegment(0, 0.0, 1.0, "a", "a"), TimedSegment(1, 1.5, 2.0, "b", "b")]
    silences = compensate(segs, _analysis(strategy, per_gap))
    assert silences[1] == pytest.approx(expected)
    assert segs[1].leading_silence == pytest.approx(expected)


def test_reduce_floor_is_point_one():
    """PROPORTIONAL_REDUCE never goes below 0.1s."""
    segs = [TimedSegment(0, 0.0, 1.0, "a", "a"), TimedSegment(1, 1.05, 2.0, "b", "b")]
    assert compensate(segs, _analysis(Strategy.PROPORTIONAL_REDUCE, -0.2))[1] == 0.1


@pytest.mark.parametrize("strategy", list(Strategy))
@pytest.mark.parametrize("gap", [-2.0, -0.01, 0.0, 0.02, 3.0])
@pytest.mark.parametrize("per_gap", [-0.5, -0.2, 0.0, 0.5])
def test_compensated_silence_never_negative(strategy, gap, per_gap):
    """Overlapping cues and negative shifts still give positive silence."""
    segs = [TimedSegment(0, 0.0, 2.0, "a", "a"), TimedSegment(1, 2.0 + gap, 5.0, "b", "b")]
    silences = compensate(segs, _analysis(strategy, per_gap))
    assert all(s >= 0 for s in silences)
    assert silences[1] >= 0.05


# --- Sequence building ---

def test_sequence_skips_tiny_silence(tmp_path):
    """Silences under 0.01s are not emitted."""
    segs = _with_audio(tmp_path, [TimedSegment(0, 0.005, 1.0, "a", "a")], [1.0])
    compensate(segs, _analysis(Strategy.PRESERVE))
    units = build_sequence(segs, _analysis(Strategy.PRESERVE))
    assert [u.kind for u in units] == ["audio"]


def test_sequence_missing_artifact_plain_mode():
    """A missing artifact becomes silence of the cue's expected duration."""
    segs = [TimedSegment(0, 0.0, 0.4, "a", "a")]
    compensate(segs, _analysis(Strategy.PRESERVE))
    units = build_sequence(segs, _analysis(Strategy.PRESERVE))
    assert len(units) == 1
    assert units[0].kind == "silence"
    assert units[0].duration == pytest.approx(0.4)
    assert units[0].segment_index == 0


def test_sequence_missing_artifact_target_mode():
    """In Mode B the stand-in silence is at least 1.0s."""
    segs = [TimedSegment(0, 0.0, 0.4, "a", "a")]
    analysis = _analysis(Strategy.USE_TARGET, 0.0)
    compensate(segs, analysis)
    units = build_sequence(segs, analysis)
    assert units[-1].kind == "silence"
    assert units[-1].duration == 1.0


# --- Materialization ---

def test_materialize_writes_canonical_silence(tmp_path):
    """Silence units become mono WAV clips at the canonical rate."""
    toolkit = FakeToolkit(threading.BoundedSemaphore(2))
    units = materialize([SequenceUnit("silence", 0.25)], toolkit, str(tmp_path))
    assert units[0].path.endswith("gap_000.wav")
    assert wav_seconds(units[0].path) == pytest.approx(0.25, abs=0.001)


def test_materialize_retries_with_minimal_silence(tmp_path):
    """A failed silence clip is retried once at 0.1s."""
    toolkit = MagicMock()
    toolkit.generate_silence.side_effect = [AssemblyFailure("disk"), "ok"]
    units = materialize([SequenceUnit("silence", 2.0)], toolkit, str(tmp_path))
    assert units[0].duration == 0.1
    assert toolkit.generate_silence.call_args_list[1].args[1] == 0.1


def test_materialize_second_failure_is_fatal(tmp_path):
    """Two failures for the same unit raise AssemblyFailure."""
    toolkit = MagicMock()
    toolkit.generate_silence.side_effect = AssemblyFailure("disk")
    with pytest.raises(AssemblyFailure):
        materialize([SequenceUnit("silence", 2.0)], toolkit, str(tmp_path))


def test_write_manifest_format(tmp_path):
    """One `file '<name>'` line per unit, names relative to the manifest."""
    units = [
        SequenceUnit("silence", 0.5, path=str(tmp_path / "gap_000.wav")),
        SequenceUnit("audio", 1.0, path=str(tmp_path / "segment_000.wav"), segment_index=0),
        SequenceUnit("audio", 1.0, path=str(tmp_path / "it's.wav"), segment_index=1),
    ]
    path = write_manifest(units, str(tmp_path / "concat_list.txt"))
    lines = open(path).read().splitlines()
    assert lines == [
        "file 'gap_000.wav'",
        "file 'segment_000.wav'",
        "file 'it'\\''s.wav'",
    ]


def test_write_manifest_rejects_unmaterialized(tmp_path):
    """Every unit needs a path before the manifest is written."""
    with pytest.raises(AssemblyFailure):
        write_manifest([SequenceUnit("silence", 0.5)], str(tmp_path / "list.txt"))


# --- Scenarios ---

def _project(tmp_path):
    project = tmp_path / "project"
    (project / "units").mkdir(parents=True)
    (project / "final").mkdir()
    return project


def test_scenario_preserve_keeps_caption_gap(tmp_path, hello_world):
    """2.0s + 1.5s clips for 2.0s/1.5s cues → PRESERVE, 0.5s gap, 4.0s total."""
    project = _project(tmp_path)
    segs = _with_audio(project / "units", hello_world, [2.0, 1.5])
    analysis = analyze(segs)
    assert analysis.strategy is Strategy.PRESERVE

    toolkit = FakeToolkit(threading.BoundedSemaphore(2))
    final, units = assemble(segs, analysis, toolkit, str(project))

    assert segs[1].leading_silence == pytest.approx(0.5)
    assert [u.kind for u in units] == ["audio", "silence", "audio"]
    assert sequence_duration(units) == pytest.approx(4.0)
    assert wav_seconds(final) == pytest.approx(4.0, abs=0.001)


def test_scenario_expand_stretches_gap(tmp_path, hello_world):
    """1.0s clips for 2.0s/1.5s cues → EXPAND, per gap 0.5, 1.0s gap, 3.0s total."""
    project = _project(tmp_path)
    segs = _with_audio(project / "units", hello_world, [1.0, 1.0])
    analysis = analyze(segs, preserve_threshold=0.5)
    assert analysis.strategy is Strategy.EXPAND
    assert analysis.per_gap == 0.5

    toolkit = FakeToolkit(threading.BoundedSemaphore(2))
    final, units = assemble(segs, analysis, toolkit, str(project))

    assert segs[1].leading_silence == pytest.approx(1.0)
    assert sequence_duration(units) == pytest.approx(3.0)
    assert wav_seconds(final) == pytest.approx(3.0, abs=0.001)


def test_assemble_target_mode_writes_manifest(tmp_path, hello_world):
    """Mode B assembly leads with floored silence and lists every unit."""
    project = _project(tmp_path)
    segs = _with_audio(project / "units", hello_world, [2.0, 1.5])
    analysis = analyze_for_target(segs, 4.2)

    toolkit = FakeToolkit(threading.BoundedSemaphore(2))
    final, units = assemble(segs, analysis, toolkit, str(project))

    assert units[0].kind == "silence"
    assert units[0].duration >= 0.05
    manifest = (project / "units" / "concat_list.txt").read_text().splitlines()
    assert len(manifest) == len(units)
    assert toolkit.manifests[-1] == manifest
