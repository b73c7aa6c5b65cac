"""
Diff engine: fingerprint → fallback policy → tokenize → Myers → hunks.

``DiffEngine.compute`` is synchronous and CPU-bound. The delta cache runs it
in a worker thread so the event loop keeps serving other pairs.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import structlog

from deltagov.config.settings import Settings
from deltagov.services.diff.fallback import FallbackDecision, build_placeholder, decide
from deltagov.services.diff.fingerprint import fingerprint
from deltagov.services.diff.hunks import assemble, count_operations
from deltagov.services.diff.models import ChangeKind, DeltaResult, EditOperation, Granularity
from deltagov.services.diff.myers import compute_edit_script
from deltagov.services.diff.tokenizer import ensure_text, tokenize

_log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DiffOptions:
    """Presentation options fixed at engine construction time."""

    granularity: Granularity = Granularity.LINE
    context_lines: int = 3
    size_limit_bytes: int = 100 * 1024
    full_context_when_unchanged: bool = False

    def __post_init__(self) -> None:
        if self.context_lines < 0:
            raise ValueError("context_lines must be >= 0")
        if self.size_limit_bytes < 1:
            raise ValueError("size_limit_bytes must be >= 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> DiffOptions:
        return cls(
            granularity=Granularity(settings.diff_granularity),
            context_lines=settings.diff_context_lines,
            size_limit_bytes=settings.diff_size_limit_bytes,
            full_context_when_unchanged=settings.diff_full_context_when_unchanged,
        )

    @property
    def variant(self) -> str:
        """Short tag distinguishing cache entries computed with different options."""
        tag = f"{self.granularity.value}-c{self.context_lines}"
        if self.full_context_when_unchanged:
            tag += "-full"
        return tag


class DiffEngine:
    """Computes deltas between two texts under one set of ``DiffOptions``."""

    def __init__(self, options: DiffOptions | None = None) -> None:
        self.options = options or DiffOptions()

    def is_oversized(self, text_a: str, text_b: str) -> bool:
        size_a = len(text_a.encode("utf-8"))
        size_b = len(text_b.encode("utf-8"))
        return decide(size_a, size_b, self.options.size_limit_bytes) is FallbackDecision.RUN_PLACEHOLDER

    def compute(
        self,
        from_version: str,
        to_version: str,
        text_a: bytes | str,
        text_b: bytes | str,
    ) -> DeltaResult:
        """
        Return the delta turning ``text_a`` into ``text_b``.

        Raises:
            InvalidTextError: either input is not valid UTF-8.
        """
        opts = self.options
        a = ensure_text(text_a)
        b = ensure_text(text_b)
        tokens_a = tokenize(a, opts.granularity)
        tokens_b = tokenize(b, opts.granularity)

        if self.is_oversized(a, b):
            _log.info(
                "delta_size_fallback",
                from_version=from_version,
                to_version=to_version,
                limit_bytes=opts.size_limit_bytes,
            )
            return build_placeholder(from_version, to_version, tokens_a, tokens_b, opts.granularity)

        started = time.perf_counter()
        if fingerprint(a) == fingerprint(b):
            script = [
                EditOperation(ChangeKind.UNCHANGED, tok, i, i) for i, tok in enumerate(tokens_a)
            ]
        else:
            script = compute_edit_script(tokens_a, tokens_b)

        insertions, deletions, unchanged = count_operations(script)
        hunks = assemble(script, opts.context_lines, opts.full_context_when_unchanged)
        _log.debug(
            "delta_computed",
            from_version=from_version,
            to_version=to_version,
            tokens_a=len(tokens_a),
            tokens_b=len(tokens_b),
            hunks=len(hunks),
            elapsed_ms=int((time.perf_counter() - started) * 1000),
        )
        return DeltaResult(
            from_version=from_version,
            to_version=to_version,
            granularity=opts.granularity,
            insertions=insertions,
            deletions=deletions,
            unchanged=unchanged,
            hunks=tuple(hunks),
            is_approximate=False,
        )
