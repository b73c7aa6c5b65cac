"""
Tokenizer: splits version text into the units the diff engine compares.

LINE granularity splits on ``"\\n"`` so a text with N newlines yields N+1
tokens (a trailing empty token when the text ends with a newline). WORD
granularity keeps every newline, horizontal-whitespace run and
non-whitespace run as its own token, so joining the tokens reproduces the
text exactly.
"""

from __future__ import annotations

import re

from deltagov.core.errors import InvalidTextError
from deltagov.services.diff.models import Granularity

_WORD_RE = re.compile(r"\n|[^\S\n]+|\S+")


def ensure_text(content: bytes | str) -> str:
    """
    Return ``content`` as a ``str`` that round-trips through UTF-8.

    Raises:
        InvalidTextError: bytes are not valid UTF-8, or the string holds
            lone surrogates that cannot be encoded.
    """
    if isinstance(content, bytes):
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidTextError(f"invalid UTF-8 at byte {exc.start}") from exc
    try:
        content.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InvalidTextError(f"unencodable character at index {exc.start}") from exc
    return content


def tokenize(text: str, granularity: Granularity = Granularity.LINE) -> list[str]:
    """Split ``text`` into comparison tokens. The empty text has no tokens."""
    if not text:
        return []
    if granularity == Granularity.WORD:
        return _WORD_RE.findall(text)
    return text.split("\n")


def detokenize(tokens: list[str] | tuple[str, ...], granularity: Granularity = Granularity.LINE) -> str:
    """Inverse of :func:`tokenize`."""
    if granularity == Granularity.WORD:
        return "".join(tokens)
    return "\n".join(tokens)
