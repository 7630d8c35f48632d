"""Per-run state: settings, permit pools, cache, toolkit and synthesizer."""

import threading
from dataclasses import dataclass

from caption_voiceover.cache import SynthesisCache
from caption_voiceover.config import Settings
from caption_voiceover.media import MediaToolkit
from caption_voiceover.tts import Engine, Synthesizer, resolve_engine


@dataclass
class RunContext:
    """Everything one invocation owns. Built once, passed explicitly."""

    settings: Settings
    project_dir: str
    engine: Engine
    synthesis_slots: threading.BoundedSemaphore
    media_slots: threading.BoundedSemaphore
    cache: SynthesisCache
    toolkit: MediaToolkit
    synthesizer: Synthesizer

    @classmethod
    def create(cls, settings: Settings, project_dir: str) -> "RunContext":
        engine = resolve_engine(settings.engine, settings.command)
        synthesis_slots = threading.BoundedSemaphore(settings.synthesis_concurrency)
        media_slots = threading.BoundedSemaphore(settings.media_concurrency)
        return cls(
            settings=settings,
            project_dir=project_dir,
            engine=engine,
            synthesis_slots=synthesis_slots,
            media_slots=media_slots,
            cache=SynthesisCache(settings.cache_dir),
            toolkit=MediaToolkit(
                media_slots,
                sample_rate=settings.sample_rate,
                channels=settings.channels,
                probe_timeout=settings.probe_timeout,
                media_timeout=settings.media_timeout,
                concat_timeout=settings.concat_timeout,
            ),
            synthesizer=Synthesizer(engine, synthesis_slots, timeout=settings.synthesis_timeout),
        )
