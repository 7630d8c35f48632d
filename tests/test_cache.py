"""Tests for synthesis cache module (Layer 1b)."""

import os

from caption_voiceover.cache import SynthesisCache, cache_key


# --- Keys ---

def test_cache_key_deterministic():
    """Same inputs, same key."""
    assert cache_key("Hello", "en-US-AriaNeural", 1.0) == cache_key("Hello", "en-US-AriaNeural", 1.0)


def test_cache_key_distinguishes_inputs():
    """Text, voice and speed each change the key."""
    base = cache_key("Hello", "v1", 1.0)
    assert cache_key("Hello!", "v1", 1.0) != base
    assert cache_key("Hello", "v2", 1.0) != base
    assert cache_key("Hello", "v1", 1.1) != base


def test_cache_key_ignores_float_noise():
    """Speeds equal to 4 decimals share a key."""
    assert cache_key("a", "v", 1.1 * 1.1) == cache_key("a", "v", 1.21)


def test_cache_key_fields_do_not_bleed():
    """Moving characters between text and voice gives a different key."""
    assert cache_key("ab", "c", 1.0) != cache_key("a", "bc", 1.0)


# --- Store and fetch ---

def test_miss_then_hit(tmp_path):
    """fetch is False before store and copies the clip after."""
    cache = SynthesisCache(str(tmp_path / "cache"))
    source = tmp_path / "clip.wav"
    source.write_bytes(b"RIFF" + b"\x00" * 100)
    target = tmp_path / "out.wav"

    assert cache.lookup("k") is None
    assert cache.fetch("k", str(target)) is False
    assert not target.exists()

    cache.store("k", str(source))
    assert cache.fetch("k", str(target)) is True
    assert target.read_bytes() == source.read_bytes()


def test_store_leaves_no_scratch_files(tmp_path):
    """Only the final <key>.wav remains after a store."""
    cache = SynthesisCache(str(tmp_path / "cache"))
    source = tmp_path / "clip.wav"
    source.write_bytes(b"data")
    path = cache.store("abc", str(source))
    assert os.listdir(tmp_path / "cache") == ["abc.wav"]
    assert path == cache.path_for("abc")


def test_empty_entry_is_a_miss(tmp_path):
    """A zero-byte cache file does not count as a hit."""
    cache = SynthesisCache(str(tmp_path / "cache"))
    open(cache.path_for("k"), "wb").close()
    assert cache.lookup("k") is None
