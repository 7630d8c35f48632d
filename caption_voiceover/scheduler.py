"""Produce one audio clip per segment: cache, synthesis, silence fallback."""

import logging
import os
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

from caption_voiceover.artifacts import raw_path, segment_filename, units_dir
from caption_voiceover.cache import cache_key
from caption_voiceover.constants import FALLBACK_SILENCE_RANGE
from caption_voiceover.context import RunContext
from caption_voiceover.errors import AssemblyFailure, SynthesisFailure
from caption_voiceover.models import CalibrationState, TimedSegment
from caption_voiceover.tts import generate_single

logger = logging.getLogger(__name__)

CACHED = "cached"
SYNTHESIZED = "synthesized"
FALLBACK = "fallback"
MISSING = "missing"


def fallback_duration(segment: TimedSegment) -> float:
    """Expected duration clamped to the fallback silence range."""
    low, high = FALLBACK_SILENCE_RANGE
    return min(high, max(low, segment.expected_duration))


class SynthesisScheduler:
    """Fans segments out over worker threads; synthesizer permits bound the load."""

    def __init__(self, context: RunContext):
        self.context = context
        self.settings = context.settings

    def synthesize_all(self, segments: list[TimedSegment], state: CalibrationState) -> Counter:
        """Give every segment an artifact (sets segment.artifact).

        Work is submitted in index order. Returns a Counter of outcomes
        (cached / synthesized / fallback / missing).
        """
        speed = state.effective_speed(self.settings.speed)
        total = len(segments)
        outcomes = Counter()
        if not segments:
            return outcomes

        workers = min(self.settings.worker_threads, total)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self.produce, segment, speed, state.volume_scale, total)
                for segment in segments
            ]
            for future in futures:
                outcomes[future.result()] += 1

        logger.info("Synthesis pass done: %s", dict(outcomes))
        return outcomes

    def _fetch_cached(self, key: str, target: str) -> bool:
        """Cache read; an unreadable or vanished entry counts as a miss."""
        try:
            return self.context.cache.fetch(key, target)
        except OSError as e:
            logger.warning("Cache entry %s unreadable (%s); synthesizing instead", key[:12], e)
            return False

    def _store_cached(self, key: str, path: str) -> None:
        """Cache write; a failure leaves the segment's own artifact in place."""
        try:
            self.context.cache.store(key, path)
        except OSError as e:
            logger.warning("Could not cache %s: %s", path, e)

    def produce(self, segment: TimedSegment, speed: float, volume_scale: float, total: int) -> str:
        """Create the artifact for one segment. Returns the outcome name."""
        ctx = self.context
        filename = segment_filename(segment.index)
        target = os.path.join(units_dir(ctx.project_dir), filename)
        key = cache_key(segment.text, self.settings.voice, speed)
        label = f"Segment {segment.index + 1}/{total}: {filename}"

        try:
            if self._fetch_cached(key, target):
                print(f"  [cache] {label}")
                outcome = CACHED
            else:
                print(f"  Generating {label.lower()}")
                raw = raw_path(ctx.project_dir, segment.index, ctx.engine.suffix)
                generate_single(
                    ctx.synthesizer,
                    segment.text,
                    self.settings.voice,
                    speed,
                    raw,
                    attempts=self.settings.synthesis_attempts,
                    base_delay=self.settings.retry_base_delay,
                )
                ctx.toolkit.conform(raw, target)
                self._store_cached(key, target)
                outcome = SYNTHESIZED
            if volume_scale != 1.0:
                ctx.toolkit.conform(target, target, volume_scale=volume_scale)
        except SynthesisFailure as e:
            seconds = fallback_duration(segment)
            logger.warning("Segment %d: %s; using %.2fs of silence", segment.index, e, seconds)
            try:
                ctx.toolkit.generate_silence(target, seconds)
            except AssemblyFailure as silence_error:
                logger.warning("Segment %d: no fallback either: %s", segment.index, silence_error)
                segment.artifact = None
                return MISSING
            outcome = FALLBACK

        segment.artifact = target
        return outcome
