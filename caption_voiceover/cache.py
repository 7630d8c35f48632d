"""On-disk cache of synthesized clips, keyed by text, voice and speed."""

import hashlib
import logging
import os
import shutil
import uuid

logger = logging.getLogger(__name__)


def cache_key(text: str, voice: str, speed: float) -> str:
    """Deterministic sha256 key for one synthesis request.

    Speed is rounded to 4 decimals so float noise does not split entries.
    """
    payload = "\x1f".join([text, voice, f"{speed:.4f}"])
    return hashlib.sha256(payload.encode()).hexdigest()


class SynthesisCache:
    """Maps cache keys to `<cache_dir>/<key>.wav`.

    Entries never expire. Writers for the same key race harmlessly: each
    copies into a unique scratch file and renames it into place.
    """

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir
        os.makedirs(cache_dir, exist_ok=True)

    def path_for(self, key: str) -> str:
        return os.path.join(self.cache_dir, f"{key}.wav")

    def lookup(self, key: str) -> str | None:
        """Path of the cached clip, or None on a miss."""
        path = self.path_for(key)
        if os.path.exists(path) and os.path.getsize(path) > 0:
            return path
        return None

    def fetch(self, key: str, target: str) -> bool:
        """Copy the cached clip to target. Returns False on a miss."""
        path = self.lookup(key)
        if path is None:
            return False
        shutil.copyfile(path, target)
        return True

    def store(self, key: str, source: str) -> str:
        """Copy source into the cache under key. Returns the cache path."""
        path = self.path_for(key)
        scratch = f"{path}.{uuid.uuid4().hex}.tmp"
        shutil.copyfile(source, scratch)
        os.replace(scratch, path)
        logger.debug("Cached %s as %s", source, path)
        return path
