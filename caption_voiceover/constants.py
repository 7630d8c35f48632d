"""All magic numbers and configuration constants."""

DEFAULT_ENGINE = "edge-tts"                  # synthesizer engine name (see tts.ENGINES)
DEFAULT_VOICE = "en-US-AriaNeural"           # voice identifier passed to the engine
DEFAULT_SPEED = 1.0                          # speed multiplier: 0.9 = 10% slower
SPEED_RANGE = (0.5, 2.0)                     # effective speed is clamped to this range
SAMPLE_RATE = 22050                 # Hz, canonical rate of every unit and the final mix
CHANNELS = 1                        # mono
SAMPLE_WIDTH = 2                    # bytes, 16-bit PCM

SYNTHESIS_CONCURRENCY = 1           # simultaneous synthesizer processes
MEDIA_CONCURRENCY = 2               # simultaneous ffmpeg/ffprobe/decoding jobs
WORKER_THREADS = 8                  # scheduler threads; permits do the actual gating

SYNTHESIS_TIMEOUT = 45.0            # seconds per synthesizer call
PROBE_TIMEOUT = 10.0                # seconds per ffprobe call
MEDIA_TIMEOUT = 30.0                # seconds per silence/conform call
CONCAT_TIMEOUT = 60.0               # seconds for the final concatenation
SETUP_TIMEOUT = 10.0                # seconds for a `-version` responsiveness check

SYNTHESIS_ATTEMPTS = 2              # tries per segment before the silence fallback
RETRY_BASE_DELAY = 1.0              # seconds, base delay for exponential backoff
MIN_ARTIFACT_BYTES = 256            # smaller synthesizer output counts as failure
FALLBACK_SILENCE_RANGE = (0.5, 5.0)  # seconds, clamp for failed-segment silence

PRESERVE_THRESHOLD = 2.0            # seconds, |difference| below this keeps gaps as-is
EXPAND_MAX_PER_GAP = 0.5            # seconds added per gap at most
REDUCE_MAX_PER_GAP = -0.2           # seconds removed per gap at most
TARGET_MAX_PER_GAP = 0.5            # seconds, Mode B per-gap clamp (symmetric)
TARGET_ERROR_TOLERANCE = 0.02       # USE_TARGET when target error within 2%
EXPECTED_ERROR_TOLERANCE = 0.05     # USE_EXPECTED when caption error within 5% ...
EXPECTED_TARGET_SPREAD = 3.0        # ... and target/caption spans differ by <= 3s
HYBRID_TARGET_WEIGHT = 0.7          # WEIGHTED_HYBRID share of the target difference

MIN_GAP = 0.05                      # seconds, floor for compensated silence
MIN_REDUCED_GAP = 0.1               # seconds, floor when reducing gaps
MIN_SILENCE_UNIT = 0.01             # seconds, shorter silences are not emitted
MISSING_AUDIO_MIN = 1.0             # seconds, Mode B floor for a missing artifact
RETRY_SILENCE = 0.1                 # seconds, second try after a silence unit fails

MAX_ITERATIONS = 3                  # calibration passes
ACCURACY_GATE = 0.85                # timing accuracy needed to stop calibrating
ACCURACY_FAR = 0.7                  # below this the large speed step is used
SPEED_STEP = 1.1                    # speed multiplier when accuracy misses the gate
SPEED_STEP_LARGE = 1.2              # speed multiplier when accuracy is below ACCURACY_FAR
VOLUME_STEP = 1.5                   # volume multiplier when output is inaudible
AUDIBLE_DB = -40.0                  # mean dBFS above this is audible
DEFAULT_MEAN_DB = -30.0             # reported when loudness cannot be measured
SILENCE_FLOOR_DB = -90.0            # reported for digital silence
SILENCE_THRESHOLD_DB = -30.0        # window RMS at or below this counts as silence
SILENCE_WINDOW_MS = 100             # window size for the silence ratio
MAX_SILENCE_RATIO = 0.9             # silence ratio must stay below this

VALIDATION_TIERS = (                # (minimum accuracy, tier name), best first
    (0.99, "perfect"),
    (0.95, "excellent"),
    (0.90, "good"),
    (0.85, "acceptable"),
)
SUGGESTION_MARGIN = 5.0             # seconds off target before a suggestion is given

OUTPUT_DIR = "output"
CACHE_DIR = "output/cache"
MANIFEST_NAME = "concat_list.txt"
FINAL_NAME = "voiceover.wav"
REPORT_NAME = "report.json"
VERSION = "0.1.0"
