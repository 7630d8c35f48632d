"""Speech synthesis via external TTS engines with retry logic."""

import logging
import os
import re
import shlex
import threading
import time
from dataclasses import dataclass
from typing import Callable

from caption_voiceover.constants import (
    SYNTHESIS_TIMEOUT,
    SYNTHESIS_ATTEMPTS,
    RETRY_BASE_DELAY,
    MIN_ARTIFACT_BYTES,
)
from caption_voiceover.errors import InputError, SynthesisFailure, SynthesisTimeout
from caption_voiceover.media import run_tool
from caption_voiceover.parser import simplify_text

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{(text|voice|speed|output)\}")


def speed_to_rate(speed: float) -> str:
    """Speed multiplier → edge-tts relative rate: 0.9 → "-10%"."""
    return f"{round((speed - 1.0) * 100):+d}%"


def _edge_tts_args(text: str, voice: str, speed: float, output_path: str) -> list[str]:
    # "=" forms keep values starting with "-" from being read as flags
    return [
        "edge-tts",
        "--voice", voice,
        f"--rate={speed_to_rate(speed)}",
        f"--text={text}",
        "--write-media", output_path,
    ]


def _kokoro_args(text: str, voice: str, speed: float, output_path: str) -> list[str]:
    return [
        "kokoro-tts",
        "--voice", voice,
        "--speed", f"{speed:.4f}",
        "--output_file", output_path,
    ]


@dataclass(frozen=True)
class Engine:
    name: str
    executable: str
    suffix: str                                         # raw output extension
    build_args: Callable[[str, str, float, str], list[str]]
    text_on_stdin: bool = False

    def command(self, text: str, voice: str, speed: float, output_path: str) -> list[str]:
        return self.build_args(text, voice, speed, output_path)


ENGINES = {
    "edge-tts": Engine("edge-tts", "edge-tts", ".mp3", _edge_tts_args),
    "kokoro": Engine("kokoro", "kokoro-tts", ".wav", _kokoro_args, text_on_stdin=True),
}


def template_engine(template: str) -> Engine:
    """Engine from an argv template with {text} {voice} {speed} {output} slots.

    Placeholders are substituted per argument; no shell is involved.
    """
    argv = shlex.split(template)
    if not argv:
        raise InputError("The 'command' engine needs a non-empty command template")

    def build_args(text, voice, speed, output_path):
        values = {"text": text, "voice": voice, "speed": f"{speed:.4f}", "output": output_path}
        # single pass: substituted values are never rescanned
        return [_PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], arg) for arg in argv]

    return Engine("command", argv[0], ".wav", build_args)


def resolve_engine(name: str, command_template: str = "") -> Engine:
    """Look up an engine by name. Raises InputError for unknown names."""
    if name == "command":
        return template_engine(command_template)
    if name not in ENGINES:
        known = ", ".join(sorted([*ENGINES, "command"]))
        raise InputError(f"Unknown engine '{name}' (known: {known})")
    return ENGINES[name]


class Synthesizer:
    """Runs one engine invocation per call, gated by the run's synthesis permits."""

    def __init__(
        self,
        engine: Engine,
        slots: threading.BoundedSemaphore,
        timeout: float = SYNTHESIS_TIMEOUT,
        min_bytes: int = MIN_ARTIFACT_BYTES,
    ):
        self.engine = engine
        self.slots = slots
        self.timeout = timeout
        self.min_bytes = min_bytes

    def synthesize(self, text: str, voice: str, speed: float, output_path: str) -> str:
        """Synthesize text to output_path.

        Raises SynthesisTimeout when the engine overruns its timeout and
        SynthesisFailure for a non-zero exit or a missing/tiny output file.
        """
        if os.path.exists(output_path):
            os.remove(output_path)
        cmd = self.engine.command(text, voice, speed, output_path)
        stdin = text if self.engine.text_on_stdin else None

        with self.slots:
            run_tool(
                cmd,
                self.timeout,
                SynthesisFailure,
                f"{self.engine.name} failed for: {text[:50]}",
                input_text=stdin,
                timeout_cls=SynthesisTimeout,
            )

        if not os.path.exists(output_path):
            raise SynthesisFailure(f"{self.engine.name} produced no file for: {text[:50]}")
        size = os.path.getsize(output_path)
        if size < self.min_bytes:
            raise SynthesisFailure(f"{self.engine.name} produced a {size}-byte file for: {text[:50]}")
        return output_path


def generate_single(
    synthesizer: Synthesizer,
    text: str,
    voice: str,
    speed: float,
    output_path: str,
    attempts: int = SYNTHESIS_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
) -> str:
    """Synthesize one clip with retry logic.

    Retries with exponential backoff; the last attempt uses simplified text.
    Raises the last SynthesisFailure once attempts are exhausted.
    """
    last_error = None
    for attempt in range(attempts):
        attempt_text = text
        if attempt > 0 and attempt == attempts - 1:
            attempt_text = simplify_text(text)
        try:
            return synthesizer.synthesize(attempt_text, voice, speed, output_path)
        except SynthesisFailure as e:
            last_error = e
            logger.warning("Synthesis attempt %d/%d failed: %s", attempt + 1, attempts, e)

        # Exponential backoff
        if attempt < attempts - 1:
            time.sleep(base_delay * (2 ** attempt))

    raise last_error
