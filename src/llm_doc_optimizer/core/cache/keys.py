"""Stable cache keys for completion results and per-user counters."""

import hashlib
import json
from typing import Any, Mapping, Optional


def _fingerprint(*parts: str) -> str:
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


class CacheKeyGenerator:
    """Namespaced key builders.

    Content keys are SHA-256 fingerprints, so identical content, model and
    options always map to the same key regardless of option ordering.
    """

    @staticmethod
    def optimization(content: str, model: str, options: Optional[Mapping[str, Any]] = None) -> str:
        encoded = json.dumps(dict(options or {}), sort_keys=True, default=str)
        return f"opt:{_fingerprint(content, model, encoded)}"

    @staticmethod
    def analysis(content: str, analysis_type: str) -> str:
        return f"analysis:{_fingerprint(content, analysis_type)}"

    @staticmethod
    def user_token(user_id: str, time_window: str) -> str:
        return f"token:{user_id}:{time_window}"

    @staticmethod
    def rate_limit(identifier: str, window: str) -> str:
        return f"rate:{identifier}:{window}"

    @staticmethod
    def health(service: str) -> str:
        return f"health:{service}"
