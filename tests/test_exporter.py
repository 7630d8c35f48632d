"""Tests for exporter module (Layer 2e)."""

import json
import os

from caption_voiceover.calibration import CalibrationResult
from caption_voiceover.config import Settings
from caption_voiceover.exporter import export_report
from caption_voiceover.models import (
    AnalysisMode,
    CalibrationState,
    QualityReport,
    SequenceUnit,
    Strategy,
    TimedSegment,
    TimingAnalysis,
)
from caption_voiceover.validator import validate_duration


def _result(project_dir):
    analysis = TimingAnalysis(
        mode=AnalysisMode.PLAIN, strategy=Strategy.PRESERVE, total_expected=3.5,
        total_actual=3.5, difference=0.0, gap_count=1, per_gap=0.0,
    )
    report = QualityReport(
        final_duration=4.0, target=4.0, accuracy=1.0, mean_volume_db=-18.0,
        audible=True, silence_ratio=0.12, passed=True,
    )
    return CalibrationResult(
        final_path=os.path.join(project_dir, "final", "voiceover.wav"),
        segments=[TimedSegment(0, 0, 2, "a", "a"), TimedSegment(1, 2.5, 4, "b", "b")],
        analysis=analysis,
        units=[SequenceUnit("audio", 2.0), SequenceUnit("silence", 0.5), SequenceUnit("audio", 1.5)],
        state=CalibrationState(iteration=1),
        reports=[report],
        outcomes={"synthesized": 2},
    )


def test_export_report_written(tmp_path):
    """report.json lands in final/ with provenance and quality data."""
    project = tmp_path / "talk"
    (project / "final").mkdir(parents=True)
    validation = validate_duration(4.0, expected=4.0)

    path = export_report(str(project), "talk.vtt", Settings(), _result(str(project)), validation)

    assert path == str(project / "final" / "report.json")
    data = json.loads(open(path).read())
    assert data["project"] == "talk"
    assert data["source"].endswith("talk.vtt")
    assert data["analysis"]["strategy"] == "preserve"
    assert data["validation"]["tier"] == "perfect"
    assert data["calibration"]["iterations"] == 1
    assert data["calibration"]["passes"][0]["passed"] is True
    assert data["stats"] == {"segments": 2, "units": 3, "outcomes": {"synthesized": 2}}
    assert data["settings"]["engine"] == "edge-tts"
