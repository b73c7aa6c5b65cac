"""
Congress.gov v3 API client.

Only the read endpoints the ingestor needs: recent bills, bill detail, the
list of text versions for a bill, and the text downloads themselves. The
API key travels as the ``api_key`` query parameter and is never logged.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from deltagov.config.settings import Settings, get_settings
from deltagov.core.errors import (
    ErrorCode,
    InvalidTextError,
    NotFoundError,
    ServiceUnavailableError,
)

_log = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 250

APPROPRIATION_KEYWORDS = (
    "appropriation",
    "spending",
    "budget",
    "fiscal year",
    "continuing resolution",
    "omnibus",
)


def is_appropriation(title: str | None) -> bool:
    """True when a bill title reads like an appropriations or spending bill."""
    if not title:
        return False
    lower = title.lower()
    return any(keyword in lower for keyword in APPROPRIATION_KEYWORDS)


# ── Errors ────────────────────────────────────────────────────────────── #


class CongressError(ServiceUnavailableError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(
            ErrorCode.INGEST_UPSTREAM_FAILED,
            message,
            detail={"upstream_status": status_code} if status_code else None,
        )


class CongressNotFoundError(NotFoundError):
    def __init__(self, resource: str) -> None:
        super().__init__("Congress.gov resource", resource)


class CongressRateLimitedError(ServiceUnavailableError):
    retryable = True

    def __init__(self, retry_after: int = 60) -> None:
        super().__init__(
            ErrorCode.INGEST_RATE_LIMITED,
            "Congress.gov rate limit exceeded",
            retry_after=retry_after,
        )


# ── Response shapes ───────────────────────────────────────────────────── #


@dataclass
class CongressBill:
    congress: int
    bill_type: str
    number: int
    title: str = ""
    origin_chamber: str | None = None
    update_date: str | None = None
    latest_action: str | None = None
    sponsor: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> CongressBill:
        sponsors = data.get("sponsors") or []
        latest = data.get("latestAction") or {}
        return cls(
            congress=int(data["congress"]),
            bill_type=str(data["type"]).lower(),
            number=int(data["number"]),
            title=data.get("title") or "",
            origin_chamber=data.get("originChamber"),
            update_date=data.get("updateDate"),
            latest_action=latest.get("text"),
            sponsor=sponsors[0].get("fullName") if sponsors else None,
            raw=data,
        )


@dataclass
class TextFormat:
    type: str
    url: str


@dataclass
class TextVersion:
    type: str
    date: str | None = None
    formats: list[TextFormat] = field(default_factory=list)

    def preferred_url(self) -> str | None:
        """Formatted XML if offered, otherwise Formatted Text."""
        by_type = {f.type: f.url for f in self.formats}
        return by_type.get("Formatted XML") or by_type.get("Formatted Text")


@dataclass
class TextVersionWithContent:
    version: TextVersion
    content: str


# ── Client ────────────────────────────────────────────────────────────── #


class CongressClient:
    """
    Async Congress.gov client.

    Pass ``http_client`` to share a connection pool or to inject a mock
    transport; otherwise one is created from settings and closed by
    :meth:`aclose`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        if self._settings.congress_api_key is None:
            raise ServiceUnavailableError(
                ErrorCode.INGEST_NOT_CONFIGURED,
                "Congress.gov API key is not configured",
            )
        self._api_key = self._settings.congress_api_key.get_secret_value()
        self._base_url = str(self._settings.congress_base_url).rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=self._settings.congress_timeout_seconds,
            headers={"User-Agent": f"{self._settings.app_name}/{self._settings.app_version}"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> CongressClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    @staticmethod
    def _check(resp: httpx.Response, resource: str) -> None:
        if resp.status_code == 200:
            return
        if resp.status_code == 404:
            raise CongressNotFoundError(resource)
        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After", "")
            raise CongressRateLimitedError(int(retry_after) if retry_after.isdigit() else 60)
        raise CongressError(
            f"Congress.gov returned status {resp.status_code}", status_code=resp.status_code
        )

    async def _get_json(self, path: str, **params: Any) -> dict[str, Any]:
        query = {"api_key": self._api_key, "format": "json", **params}
        try:
            resp = await self._http.get(
                f"{self._base_url}{path}",
                params=query,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            _log.warning("congress_request_failed", path=path, error=type(exc).__name__)
            raise CongressError(f"Congress.gov request failed: {type(exc).__name__}") from exc
        self._check(resp, path)
        return resp.json()

    async def fetch_recent_bills(self, limit: int = 20) -> list[CongressBill]:
        """Return up to ``limit`` bills, most recently updated first."""
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        data = await self._get_json("/bill", limit=limit, sort="updateDate desc")
        bills = [CongressBill.from_api(item) for item in data.get("bills", [])]
        _log.info("congress_bills_fetched", count=len(bills))
        return bills

    async def get_bill_detail(self, congress: int, bill_type: str, number: int) -> CongressBill:
        data = await self._get_json(f"/bill/{congress}/{bill_type.lower()}/{number}")
        return CongressBill.from_api(data["bill"])

    async def get_bill_text_versions(
        self, congress: int, bill_type: str, number: int
    ) -> list[TextVersion]:
        data = await self._get_json(f"/bill/{congress}/{bill_type.lower()}/{number}/text")
        return [
            TextVersion(
                type=item.get("type") or "",
                date=item.get("date"),
                formats=[
                    TextFormat(type=f.get("type") or "", url=f["url"])
                    for f in item.get("formats") or []
                    if f.get("url")
                ],
            )
            for item in data.get("textVersions", [])
        ]

    async def fetch_text_content(self, url: str) -> str:
        """Download one text rendition, reading at most ``congress_max_text_bytes``."""
        limit = self._settings.congress_max_text_bytes
        chunks: list[bytes] = []
        size = 0
        truncated = False
        try:
            async with self._http.stream(
                "GET", url, headers={"Accept": "text/xml, text/html, text/plain"}
            ) as resp:
                self._check(resp, url)
                async for chunk in resp.aiter_bytes():
                    chunks.append(chunk)
                    size += len(chunk)
                    if size >= limit:
                        truncated = True
                        _log.warning("congress_text_truncated", url=url, limit_bytes=limit)
                        break
        except httpx.HTTPError as exc:
            raise CongressError(f"Congress.gov text download failed: {type(exc).__name__}") from exc
        # a cut in the middle of a multi-byte character drops the partial character
        decoder = codecs.getincrementaldecoder("utf-8")()
        try:
            return decoder.decode(b"".join(chunks)[:limit], final=not truncated)
        except UnicodeDecodeError as exc:
            raise InvalidTextError(f"invalid UTF-8 at byte {exc.start}") from exc

    async def get_bill_text_with_content(
        self, congress: int, bill_type: str, number: int
    ) -> list[TextVersionWithContent]:
        """
        Return every text version that has a usable rendition, with its content.

        A version whose download fails is skipped and logged.
        """
        versions = await self.get_bill_text_versions(congress, bill_type, number)
        out: list[TextVersionWithContent] = []
        for version in versions:
            url = version.preferred_url()
            if url is None:
                continue
            try:
                content = await self.fetch_text_content(url)
            except (CongressError, CongressNotFoundError, InvalidTextError) as exc:
                _log.warning("congress_text_skipped", version_type=version.type, error=exc.message)
                continue
            out.append(TextVersionWithContent(version=version, content=content))
        return out
