"""Content fingerprinting for version deduplication."""

from __future__ import annotations

import hashlib


def fingerprint(content: bytes | str) -> str:
    """
    Return the SHA-256 hex digest of ``content``.

    Strings are UTF-8 encoded first, so a text and its encoded bytes share one
    fingerprint. Two versions with equal fingerprints are treated as identical.
    """
    if isinstance(content, str):
        content = content.encode("utf-8", errors="surrogatepass")
    return hashlib.sha256(content).hexdigest()
