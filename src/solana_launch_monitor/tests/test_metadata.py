from __future__ import annotations

import asyncio

import httpx

from solana_launch_monitor.datalake.schemas import MetadataStatus
from solana_launch_monitor.ingestion.metadata import MetadataFetcher, extract_social_link, is_fetchable_uri


def _fetcher(handler) -> MetadataFetcher:
    return MetadataFetcher(timeout=3.0, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _lookup(handler, uri: str):
    async def _run():
        fetcher = _fetcher(handler)
        try:
            return await fetcher.lookup(uri)
        finally:
            await fetcher.aclose()

    return asyncio.run(_run())


def test_json_document_yields_social_links() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "meta.test"
        return httpx.Response(
            200,
            json={"name": "Foo", "extensions": {"twitter": "https://x.com/foo"}, "links": {"telegram": "https://t.me/foo"}},
        )

    result = _lookup(handler, "https://meta.test/foo.json")

    assert result.status == MetadataStatus.OK
    assert result.twitter_url == "https://x.com/foo"
    assert result.telegram_url == "https://t.me/foo"


def test_non_json_response_is_a_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})

    assert _lookup(handler, "https://meta.test/foo").status == MetadataStatus.FAILED


def test_error_status_is_a_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "missing"})

    assert _lookup(handler, "https://meta.test/foo").status == MetadataStatus.FAILED


def test_network_errors_and_timeouts_are_errors() -> None:
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    assert _lookup(refused, "https://meta.test/foo").status == MetadataStatus.ERROR
    timed_out = _lookup(slow, "https://meta.test/foo")
    assert timed_out.status == MetadataStatus.ERROR
    assert "timed out" in (timed_out.error or "")


def test_unfetchable_uri_is_not_requested() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    assert _lookup(handler, "").status == MetadataStatus.INVALID_URI
    assert _lookup(handler, "ipfs://bafy/foo.json").status == MetadataStatus.INVALID_URI
    assert calls == []


def test_uri_and_link_helpers() -> None:
    assert is_fetchable_uri("HTTPS://meta.test")
    assert not is_fetchable_uri(None)
    assert extract_social_link({"twitter": "top", "extensions": {"twitter": "nested"}}, "twitter") == "top"
    assert extract_social_link({"links": {"telegram": "t"}}, "telegram") == "t"
    assert extract_social_link({"extensions": "bad"}, "twitter") is None


def test_slow_server_hits_the_total_deadline() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    async def _run():
        fetcher = MetadataFetcher(
            timeout=0.05, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        try:
            return await fetcher.lookup("https://meta.test/slow.json")
        finally:
            await fetcher.aclose()

    result = asyncio.run(_run())
    assert result.status == MetadataStatus.ERROR
    assert result.error == "TimeoutError"
