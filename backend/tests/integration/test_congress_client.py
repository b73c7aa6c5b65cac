"""Integration tests for the Congress.gov client against a mock transport."""
import json

import httpx
import pytest

from deltagov.core.errors import ErrorCode, ServiceUnavailableError
from deltagov.services.ingestion.congress_client import (
    CongressBill,
    CongressClient,
    CongressError,
    CongressNotFoundError,
    CongressRateLimitedError,
    TextFormat,
    TextVersion,
    is_appropriation,
)
XML_URL = "https://www.congress.gov/119/bills/hr1/BILLS-119hr1rh.xml"
TXT_URL = "https://www.congress.gov/119/bills/hr1/BILLS-119hr1rh.htm"


def _client(settings_factory, handler, **overrides) -> CongressClient:
    settings = settings_factory(congress_api_key="test-key", **overrides)
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CongressClient(settings, http_client=http)


def test_is_appropriation():
    assert is_appropriation("Department of Defense Appropriations Act, 2026")
    assert is_appropriation("Further Continuing Resolution")
    assert not is_appropriation("Clean Water Act")
    assert not is_appropriation(None)


def test_client_requires_api_key(settings_factory):
    with pytest.raises(ServiceUnavailableError) as info:
        CongressClient(settings_factory())
    assert info.value.code is ErrorCode.INGEST_NOT_CONFIGURED
    assert info.value.http_status == 503


def test_bill_from_api_normalises_fields():
    bill = CongressBill.from_api(
        {
            "congress": 119,
            "type": "HR",
            "number": "1",
            "title": "One Big Act",
            "updateDate": "2026-05-01T12:00:00Z",
            "latestAction": {"text": "Referred to committee."},
            "sponsors": [{"fullName": "Rep. Smith, Jane [D-CA-1]"}],
        }
    )
    assert (bill.bill_type, bill.number) == ("hr", 1)
    assert bill.latest_action == "Referred to committee."
    assert bill.sponsor == "Rep. Smith, Jane [D-CA-1]"


def test_preferred_url_prefers_xml():
    version = TextVersion(
        type="Reported in House",
        formats=[TextFormat("PDF", "x.pdf"), TextFormat("Formatted Text", TXT_URL), TextFormat("Formatted XML", XML_URL)],
    )
    assert version.preferred_url() == XML_URL
    assert TextVersion(type="x", formats=[TextFormat("PDF", "x.pdf")]).preferred_url() is None


async def test_fetch_recent_bills_sends_key_and_sort(settings_factory):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        seen["path"] = request.url.path
        return httpx.Response(
            200, json={"bills": [{"congress": 119, "type": "S", "number": 7, "title": "A"}]}
        )

    async with _client(settings_factory, handler) as client:
        bills = await client.fetch_recent_bills(limit=1000)

    assert [(b.bill_type, b.number) for b in bills] == [("s", 7)]
    assert seen["path"] == "/v3/bill"
    assert seen["api_key"] == "test-key"
    assert seen["format"] == "json"
    assert seen["limit"] == "250"
    assert seen["sort"] == "updateDate desc"


async def test_status_codes_map_to_errors(settings_factory):
    statuses = iter([404, 429, 500])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        headers = {"Retry-After": "12"} if status == 429 else {}
        return httpx.Response(status, headers=headers, json={})

    async with _client(settings_factory, handler) as client:
        with pytest.raises(CongressNotFoundError):
            await client.get_bill_detail(119, "hr", 1)
        with pytest.raises(CongressRateLimitedError) as limited:
            await client.get_bill_detail(119, "hr", 1)
        with pytest.raises(CongressError) as failed:
            await client.get_bill_detail(119, "hr", 1)

    assert limited.value.retry_after == 12
    assert limited.value.retryable
    assert failed.value.detail == {"upstream_status": 500}


async def test_transport_error_becomes_congress_error(settings_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(settings_factory, handler) as client:
        with pytest.raises(CongressError):
            await client.fetch_recent_bills()


async def test_text_versions_and_content(settings_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v3/bill/119/hr/1/text":
            return httpx.Response(
                200,
                json={
                    "textVersions": [
                        {
                            "type": "Reported in House",
                            "date": "2026-05-12T04:00:00Z",
                            "formats": [
                                {"type": "Formatted Text", "url": TXT_URL},
                                {"type": "Formatted XML", "url": XML_URL},
                            ],
                        },
                        {"type": "Introduced in House", "date": None, "formats": []},
                    ]
                },
            )
        if str(request.url) == XML_URL:
            return httpx.Response(200, content="<bill>SEC. 1.</bill>".encode())
        return httpx.Response(404)

    async with _client(settings_factory, handler) as client:
        texts = await client.get_bill_text_with_content(119, "HR", 1)

    assert len(texts) == 1
    assert texts[0].version.type == "Reported in House"
    assert texts[0].content == "<bill>SEC. 1.</bill>"


async def test_failed_download_is_skipped(settings_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/text"):
            formats = [{"type": "Formatted XML", "url": XML_URL}]
            return httpx.Response(
                200,
                content=json.dumps(
                    {"textVersions": [{"type": "Reported in House", "formats": formats}]}
                ),
            )
        return httpx.Response(502)

    async with _client(settings_factory, handler) as client:
        assert await client.get_bill_text_with_content(119, "hr", 1) == []


async def test_text_download_is_size_limited(settings_factory):
    body = ("a" * 1023 + "§" + "tail").encode()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body)

    async with _client(settings_factory, handler, congress_max_text_bytes=1024) as client:
        content = await client.fetch_text_content(XML_URL)

    # the two-byte character straddling the limit is dropped
    assert content == "a" * 1023
