"""Error taxonomy for the voiceover pipeline."""


class VoiceoverError(RuntimeError):
    """Base class; `code` is a short machine-readable kind."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InputError(VoiceoverError):
    """Caption input is unusable (nothing parsed, bad settings file)."""

    code = "input"


class SetupFailure(VoiceoverError):
    """A required external tool is missing or unresponsive."""

    code = "setup"


class SynthesisFailure(VoiceoverError):
    """One segment could not be synthesized. Recovered with fallback silence."""

    code = "synthesis"


class SynthesisTimeout(SynthesisFailure):
    code = "synthesis_timeout"


class AssemblyFailure(VoiceoverError):
    """Silence generation or concatenation failed for the run."""

    code = "assembly"


class DurationProbeFailure(VoiceoverError):
    """Duration of a media file could not be measured."""

    code = "probe"
