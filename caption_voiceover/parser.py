"""Parse caption tracks (WebVTT-like) into timed segments."""

import logging
import re

from caption_voiceover.errors import InputError
from caption_voiceover.models import TimedSegment

logger = logging.getLogger(__name__)

_ARROW = r"\s*-->\s*"
# Trailing cue settings ("align:start position:10%") are tolerated
_SETTINGS = r"(?:\s+.*)?"

# Timestamp grammars in priority order; the first one matching any line wins.
TIMESTAMP_GRAMMARS = (
    # 00:01:02.345 --> 00:01:04.000
    re.compile(
        rf"(\d{{2}}):(\d{{2}}):(\d{{2}})[.,](\d{{3}}){_ARROW}"
        rf"(\d{{2}}):(\d{{2}}):(\d{{2}})[.,](\d{{3}}){_SETTINGS}"
    ),
    # 0:01:02.345 --> 0:01:04.000
    re.compile(
        rf"(\d{{1,2}}):(\d{{2}}):(\d{{2}})[.,](\d{{3}}){_ARROW}"
        rf"(\d{{1,2}}):(\d{{2}}):(\d{{2}})[.,](\d{{3}}){_SETTINGS}"
    ),
    # 01:02.345 --> 01:04.000
    re.compile(
        rf"(\d{{2}}):(\d{{2}})[.,](\d{{3}}){_ARROW}"
        rf"(\d{{2}}):(\d{{2}})[.,](\d{{3}}){_SETTINGS}"
    ),
    # 1:02.345 --> 1:04.000
    re.compile(
        rf"(\d{{1,2}}):(\d{{2}})[.,](\d{{3}}){_ARROW}"
        rf"(\d{{1,2}}):(\d{{2}})[.,](\d{{3}}){_SETTINGS}"
    ),
)

_CUE_INDEX_RE = re.compile(r"^\d+$")

# Normalization passes, applied in order
_STRIP_PATTERNS = (
    re.compile(r"\[.*?\]"),   # [stage directions]
    re.compile(r"\(.*?\)"),   # (asides)
    re.compile(r"<.*?>"),     # <i>markup</i>
    re.compile(r"♪.*?♪"),     # ♪ lyrics ♪
)
_URL_RE = re.compile(r"https?://\S+")
_URL_PLACEHOLDER = "link"
_WHITESPACE_RE = re.compile(r"\s+")

# Characters dropped by simplify_text
_SIMPLIFY_DROP = "\"'[](){}#@"
_SIMPLIFY_WORDS = {"%": " percent ", "&": " and "}


def normalize_text(text: str) -> str:
    """Clean caption text for speech.

    Strips bracketed directions, parenthetical asides, markup tags and
    ♪-delimited spans, replaces URLs with "link" and collapses whitespace.
    normalize_text(normalize_text(x)) == normalize_text(x).
    """
    result = text
    # Repeat until stable: removing one span can splice a new one together
    while True:
        result = _WHITESPACE_RE.sub(" ", result)
        previous = result
        for pattern in _STRIP_PATTERNS:
            result = pattern.sub("", result)
        result = _URL_RE.sub(_URL_PLACEHOLDER, result)
        if result == previous:
            break
    return _WHITESPACE_RE.sub(" ", result).strip()


def simplify_text(text: str) -> str:
    """Reduce text to plain words for a last synthesis attempt.

    Returns the input unchanged when simplification leaves almost nothing.
    """
    simplified = _WHITESPACE_RE.sub(" ", text).strip()
    for char in _SIMPLIFY_DROP:
        simplified = simplified.replace(char, "")
    for char, word in _SIMPLIFY_WORDS.items():
        simplified = simplified.replace(char, word)
    simplified = _WHITESPACE_RE.sub(" ", simplified).strip()
    if len(simplified) < 3:
        return text
    return simplified


def _is_skippable(line: str) -> bool:
    return not line or line.startswith("WEBVTT") or bool(_CUE_INDEX_RE.match(line))


def _to_seconds(groups: tuple[str, ...]) -> float:
    """(h, m, s, ms) or (m, s, ms) → seconds."""
    *clock, millis = (int(g) for g in groups)
    seconds = 0
    for part in clock:
        seconds = seconds * 60 + part
    return seconds + millis / 1000.0


def _parse_with_grammar(lines: list[str], grammar: re.Pattern) -> list[TimedSegment]:
    """Collect cues recognized by one grammar."""
    cues = []  # (timestamp match, text lines)
    current = None

    for raw in lines:
        line = raw.strip()
        if _is_skippable(line):
            continue

        match = grammar.fullmatch(line)
        if match:
            current = (match, [])
            cues.append(current)
        elif current is not None:
            current[1].append(line)

    segments = []
    for match, text_lines in cues:
        if not text_lines:
            continue
        groups = match.groups()
        half = len(groups) // 2
        start = _to_seconds(groups[:half])
        end = _to_seconds(groups[half:])
        if end - start <= 0:
            logger.debug("Dropping cue with non-positive duration at %.3fs", start)
            continue

        raw_text = " ".join(text_lines)
        text = normalize_text(raw_text)
        if not text:
            logger.debug("Dropping cue with no speakable text at %.3fs", start)
            continue

        segments.append(TimedSegment(
            index=len(segments),
            start=start,
            end=end,
            raw_text=raw_text,
            text=text,
        ))

    return segments


def parse_captions(lines: list[str]) -> list[TimedSegment]:
    """Parse caption lines into ordered timed segments.

    Grammars are tried in priority order; the segments of the first grammar
    that matches at least one line are returned, never a mix. Returns an
    empty list if no grammar matches.
    """
    for number, grammar in enumerate(TIMESTAMP_GRAMMARS, start=1):
        if not any(grammar.fullmatch(line.strip()) for line in lines):
            continue
        segments = _parse_with_grammar(lines, grammar)
        logger.info("Timestamp grammar %d matched: %d segments", number, len(segments))
        return segments
    return []


def load_captions(path: str) -> list[TimedSegment]:
    """Read and parse a caption file.

    Raises InputError when the file is missing, unreadable, or yields no segments.
    """
    try:
        with open(path, encoding="utf-8-sig") as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise InputError(f"Cannot read caption file {path}: {e}") from e

    segments = parse_captions(lines)
    if not segments:
        raise InputError(f"No caption segments could be parsed from: {path}")
    return segments
