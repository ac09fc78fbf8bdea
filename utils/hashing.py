"""Deterministic content hashing and cache key construction.

Keys must agree across processes and machines, so everything here is built on
SHA-256 over a canonical encoding. Content is trimmed before hashing; params
are serialised as JSON with sorted keys so field order never changes the key.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

CONTENT_HASH_LENGTH = 16
KEY_PREFIX = "api-response"
KEY_SEPARATOR = ":"


def _digest(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:CONTENT_HASH_LENGTH]


def hash_content(text: str) -> str:
    """Return a short SHA-256 digest of ``text`` after trimming whitespace."""
    return _digest(text.strip())


def canonical_json(params: Any) -> str:
    """Serialise ``params`` so logically equal objects produce equal strings."""
    return json.dumps(
        params,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def hash_params(params: Any) -> str:
    """Return a short digest of the canonical JSON form of ``params``."""
    return _digest(canonical_json(params))


def _escape_part(part: str) -> str:
    # Escape the escape character first so the mapping stays reversible.
    return part.replace("%", "%25").replace(KEY_SEPARATOR, "%3A")


def build_key(endpoint: str, content_hash: str, params_hash: str | None = None) -> str:
    """Join key components so distinct component tuples never share a key.

    ``%`` and ``:`` inside a component are percent-escaped, which keeps
    ``("a", "bc")`` and ``("ab", "c")`` apart.
    """
    parts = [KEY_PREFIX, endpoint, content_hash]
    if params_hash:
        parts.append(params_hash)
    return KEY_SEPARATOR.join(_escape_part(part) for part in parts)


def response_cache_key(text: str, endpoint: str, params: Any | None = None) -> str:
    """Build the cache key for an AI response over ``text`` at ``endpoint``."""
    params_hash = hash_params(params) if params else None
    return build_key(endpoint, hash_content(text), params_hash)
