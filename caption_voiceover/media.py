"""Media toolkit: silence clips, duration probes, conforming, concatenation, levels."""

import logging
import math
import os
import shutil
import subprocess
import threading

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from caption_voiceover.constants import (
    SAMPLE_RATE,
    CHANNELS,
    SAMPLE_WIDTH,
    PROBE_TIMEOUT,
    MEDIA_TIMEOUT,
    CONCAT_TIMEOUT,
    SETUP_TIMEOUT,
    DEFAULT_MEAN_DB,
    SILENCE_FLOOR_DB,
    SILENCE_THRESHOLD_DB,
    SILENCE_WINDOW_MS,
)
from caption_voiceover.errors import (
    AssemblyFailure,
    DurationProbeFailure,
    SetupFailure,
    SynthesisFailure,
)

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("ffmpeg", "ffprobe")


def check_tools(executables=REQUIRED_TOOLS) -> dict[str, str]:
    """Verify executables are on PATH.

    Returns {name: resolved path}. Raises SetupFailure naming the first
    missing tool.
    """
    resolved = {}
    for name in executables:
        path = shutil.which(name)
        if not path:
            raise SetupFailure(f"{name} is required but not found on PATH")
        resolved[name] = path
    return resolved


def check_responsive(executables=REQUIRED_TOOLS, timeout: float = SETUP_TIMEOUT) -> None:
    """Run `<tool> -version` for each tool. Raises SetupFailure if one errors or hangs."""
    for name in executables:
        run_tool([name, "-version"], timeout, SetupFailure, f"{name} is not responding")


def run_tool(cmd: list[str], timeout: float, error_cls, description: str,
             input_text: str | None = None, timeout_cls=None) -> subprocess.CompletedProcess:
    """Run an external tool with an argument list and a hard timeout.

    The child is killed on expiry. Failures are raised as error_cls, expiry
    as timeout_cls (defaults to error_cls).
    """
    logger.debug("Running: %s", cmd)
    try:
        proc = subprocess.run(
            cmd,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise (timeout_cls or error_cls)(f"{description}: timed out after {timeout:g}s") from e
    except OSError as e:
        raise error_cls(f"{description}: {e}") from e
    if proc.returncode != 0:
        detail = (proc.stderr or proc.stdout or "").strip()
        raise error_cls(f"{description}: exit status {proc.returncode}: {detail[-300:]}")
    return proc


def _gain_db(volume_scale: float) -> float:
    """Volume multiplier → gain in dB."""
    if volume_scale <= 0:
        return SILENCE_FLOOR_DB
    return 20 * math.log10(volume_scale)


class MediaToolkit:
    """ffmpeg/ffprobe/pydub operations gated by the run's media permits."""

    def __init__(
        self,
        slots: threading.BoundedSemaphore,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
        probe_timeout: float = PROBE_TIMEOUT,
        media_timeout: float = MEDIA_TIMEOUT,
        concat_timeout: float = CONCAT_TIMEOUT,
    ):
        self.slots = slots
        self.sample_rate = sample_rate
        self.channels = channels
        self.probe_timeout = probe_timeout
        self.media_timeout = media_timeout
        self.concat_timeout = concat_timeout

    def _to_canonical(self, audio: AudioSegment) -> AudioSegment:
        return (
            audio.set_frame_rate(self.sample_rate)
            .set_channels(self.channels)
            .set_sample_width(SAMPLE_WIDTH)
        )

    def generate_silence(self, path: str, seconds: float) -> str:
        """Write a silent WAV clip in the canonical format. Returns path."""
        duration_ms = max(0, round(seconds * 1000))
        with self.slots:
            try:
                silence = AudioSegment.silent(duration=duration_ms, frame_rate=self.sample_rate)
                self._to_canonical(silence).export(path, format="wav")
            except OSError as e:
                raise AssemblyFailure(f"Could not write {seconds:.3f}s silence to {path}: {e}") from e
        return path

    def probe_duration(self, path: str) -> float:
        """Duration of a media file in seconds via ffprobe.

        Raises DurationProbeFailure; callers treat that as 0.0.
        """
        cmd = [
            "ffprobe",
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            path,
        ]
        with self.slots:
            proc = run_tool(cmd, self.probe_timeout, DurationProbeFailure, f"ffprobe failed for {path}")
        try:
            return float(proc.stdout.strip())
        except ValueError as e:
            raise DurationProbeFailure(f"Unparseable duration from ffprobe for {path}: {proc.stdout!r}") from e

    def conform(self, source: str, target: str, volume_scale: float = 1.0) -> str:
        """Re-encode an audio file as canonical 16-bit WAV at target.

        source and target may be the same file. Raises SynthesisFailure when
        ffmpeg cannot decode the source.
        """
        scratch = target + ".part.wav"
        cmd = [
            "ffmpeg", "-y",
            "-i", source,
            "-ar", str(self.sample_rate),
            "-ac", str(self.channels),
            "-c:a", "pcm_s16le",
        ]
        if volume_scale != 1.0:
            cmd += ["-filter:a", f"volume={_gain_db(volume_scale):.2f}dB"]
        cmd.append(scratch)
        with self.slots:
            try:
                run_tool(cmd, self.media_timeout, SynthesisFailure, f"Could not conform {source}")
                os.replace(scratch, target)
            except OSError as e:
                raise SynthesisFailure(f"Could not conform {source}: {e}") from e
            finally:
                if os.path.exists(scratch):
                    os.remove(scratch)
        return target

    def concatenate(self, manifest_path: str, output_path: str) -> str:
        """Losslessly join the clips listed in a concat manifest."""
        cmd = [
            "ffmpeg", "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", manifest_path,
            "-c", "copy",
            output_path,
        ]
        with self.slots:
            run_tool(cmd, self.concat_timeout, AssemblyFailure, "ffmpeg concat failed")
        if not os.path.exists(output_path):
            raise AssemblyFailure(f"ffmpeg concat produced no output at {output_path}")
        return output_path

    def analyze_levels(self, path: str) -> tuple[float, float]:
        """Mean loudness (dBFS) and silence ratio of a WAV file.

        The silence ratio is the share of 100ms windows at or below -30 dBFS.
        An unreadable file reports (-30.0, 0.0).
        """
        with self.slots:
            try:
                audio = AudioSegment.from_file(path)
            except (CouldntDecodeError, OSError, IndexError) as e:
                logger.warning("Could not analyze levels of %s: %s", path, e)
                return DEFAULT_MEAN_DB, 0.0

        mean_db = audio.dBFS
        if math.isinf(mean_db):
            mean_db = SILENCE_FLOOR_DB

        samples = np.array(audio.get_array_of_samples(), dtype=np.float64)
        if audio.channels > 1:
            samples = samples.reshape((-1, audio.channels)).mean(axis=1)
        window = max(1, int(audio.frame_rate * SILENCE_WINDOW_MS / 1000))
        count = len(samples) // window
        if count == 0:
            return mean_db, 1.0 if mean_db <= SILENCE_THRESHOLD_DB else 0.0

        frames = samples[: count * window].reshape((count, window))
        rms = np.sqrt(np.mean(frames ** 2, axis=1))
        with np.errstate(divide="ignore"):
            window_db = 20 * np.log10(rms / audio.max_possible_amplitude)
        silence_ratio = float(np.count_nonzero(window_db <= SILENCE_THRESHOLD_DB)) / count
        return mean_db, silence_ratio
