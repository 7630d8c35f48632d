"""Output directory layout, unit file naming, and JSON artifacts."""

import json
import os
import re

from caption_voiceover.constants import OUTPUT_DIR, MANIFEST_NAME, FINAL_NAME

SUBDIRS = ("raw", "units", "final")


def slug_from_path(caption_path: str) -> str:
    """Convert caption filename to output directory slug.

    "Episode 01.en.vtt" → "episode_01_en"
    "/path/to/Talk.vtt" → "talk"
    """
    basename = os.path.splitext(os.path.basename(caption_path))[0]
    # Replace non-alphanumeric with underscore, collapse multiples, strip edges
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", basename).strip("_").lower()
    return slug or "captions"


def init_output_dir(caption_path: str, output_base: str = OUTPUT_DIR) -> str:
    """Create output/<slug>/ and its subdirectories.

    Returns the project directory path.
    """
    project_dir = os.path.join(output_base, slug_from_path(caption_path))
    for subdir in SUBDIRS:
        os.makedirs(os.path.join(project_dir, subdir), exist_ok=True)
    return project_dir


def units_dir(project_dir: str) -> str:
    return os.path.join(project_dir, "units")


def segment_filename(index: int) -> str:
    """Canonical WAV of segment `index`."""
    return f"segment_{index:03d}.wav"


def gap_filename(position: int) -> str:
    """Silence unit at sequence position `position`."""
    return f"gap_{position:03d}.wav"


def raw_path(project_dir: str, index: int, suffix: str) -> str:
    """Where the engine writes segment `index` before conforming."""
    return os.path.join(project_dir, "raw", f"raw_{index:03d}{suffix}")


def manifest_path(project_dir: str) -> str:
    return os.path.join(units_dir(project_dir), MANIFEST_NAME)


def final_path(project_dir: str) -> str:
    return os.path.join(project_dir, "final", FINAL_NAME)


def write_artifact(project_dir: str, filename: str, data: dict) -> str:
    """Write JSON artifact to project_dir/filename.

    Returns path to the written file.
    """
    path = os.path.join(project_dir, filename)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    return path


def load_artifact(project_dir: str, filename: str) -> dict | None:
    """Read JSON artifact. Returns None if file doesn't exist."""
    path = os.path.join(project_dir, filename)
    if not os.path.exists(path):
        return None
    with open(path) as f:
        return json.load(f)
