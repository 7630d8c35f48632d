"""Write the run report next to the final voiceover."""

import os
from datetime import datetime, timezone

from caption_voiceover.artifacts import write_artifact
from caption_voiceover.calibration import CalibrationResult
from caption_voiceover.config import Settings
from caption_voiceover.constants import REPORT_NAME, VERSION
from caption_voiceover.validator import ValidationResult


def export_report(
    project_dir: str,
    source: str,
    settings: Settings,
    result: CalibrationResult,
    validation: ValidationResult,
) -> str:
    """Write final/report.json (provenance and quality manifest).

    Returns path to the report.
    """
    report = {
        "project": os.path.basename(os.path.normpath(project_dir)),
        "source": os.path.abspath(source),
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "producer_version": VERSION,
        "output": os.path.abspath(result.final_path),
        "settings": settings.to_dict(),
        "calibration": {
            "iterations": len(result.reports),
            "speed_scale": round(result.state.speed_scale, 4),
            "volume_scale": round(result.state.volume_scale, 4),
            "length_scale": round(result.state.length_scale, 4),
            "passes": [r.to_dict() for r in result.reports],
        },
        "analysis": result.analysis.to_dict(),
        "validation": validation.to_dict(),
        "stats": {
            "segments": len(result.segments),
            "units": len(result.units),
            "outcomes": dict(result.outcomes),
        },
    }
    return write_artifact(os.path.join(project_dir, "final"), REPORT_NAME, report)
