from __future__ import annotations

import asyncio
import json

from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from solana_launch_monitor.dashboard import create_app
from solana_launch_monitor.datalake.schemas import (
    LaunchEvent,
    RiskLevel,
    ScoreResult,
    TokenClassification,
    TokenRecord,
)
from solana_launch_monitor.ingestion.event_listener import (
    INVALID_ADDRESS_MESSAGE,
    WELCOME_MESSAGE,
    LaunchMonitor,
)


class FakeFeed:
    def __init__(self, config, handler) -> None:
        self.handler = handler

    async def run(self) -> None:
        await asyncio.Event().wait()


class FakeRpc:
    async def get_signatures_for_address(self, address, limit=None):
        return []

    async def get_transactions(self, signatures):
        return []

    async def aclose(self) -> None:
        return None


class FakeMetadata:
    async def lookup(self, uri):
        raise AssertionError("not used")

    async def aclose(self) -> None:
        return None


def _monitor(make_config, **sections) -> LaunchMonitor:
    return LaunchMonitor(
        make_config(**sections),
        rpc=FakeRpc(),
        metadata_fetcher=FakeMetadata(),
        feed_factory=FakeFeed,
    )


def _record(mint: str) -> TokenRecord:
    event = LaunchEvent.from_payload({"mint": mint, "name": "Foo", "symbol": "FOO"})
    return TokenRecord.from_launch(
        event, ScoreResult(10, [], TokenClassification.SUSPICIOUS, RiskLevel.MEDIUM)
    )


def test_healthz_returns_empty_success(make_config) -> None:
    app = create_app(_monitor(make_config), manage_lifecycle=False)

    async def _run():
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            return await client.get("/healthz")

    response = asyncio.run(_run())
    assert response.status_code == 200
    assert response.content == b""


def test_cors_follows_configured_origin(make_config) -> None:
    allowed = create_app(
        _monitor(make_config, server={"cors_origin": "https://viewer.test"}), manage_lifecycle=False
    )
    closed = create_app(_monitor(make_config), manage_lifecycle=False)

    async def _run(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            return await client.get("/healthz", headers={"Origin": "https://viewer.test"})

    assert asyncio.run(_run(allowed)).headers.get("access-control-allow-origin") == "https://viewer.test"
    assert "access-control-allow-origin" not in asyncio.run(_run(closed)).headers


def test_viewer_receives_welcome_active_tokens_and_replies(make_config) -> None:
    monitor = _monitor(make_config)
    monitor.state.add_token(_record("A"))
    monitor.state.add_token(_record("B"))

    with TestClient(create_app(monitor)) as client:
        assert monitor.running
        with client.websocket_connect("/") as websocket:
            assert websocket.receive_json() == {"type": "welcome", "message": WELCOME_MESSAGE}
            assert [websocket.receive_json()["data"]["mint"] for _ in range(2)] == ["A", "B"]

            websocket.send_text(json.dumps({"type": "requestOnChainData", "mint": "bad", "creator": "bad"}))
            assert websocket.receive_json() == {
                "type": "onChainDataError",
                "mint": "bad",
                "error": INVALID_ADDRESS_MESSAGE,
            }
            assert len(monitor.hub) == 1

    assert len(monitor.hub) == 0
    assert not monitor.running


def test_binary_frames_are_read_as_text_and_garbage_is_dropped(make_config) -> None:
    monitor = _monitor(make_config)
    request = {"type": "requestOnChainData", "mint": "x", "creator": "y"}

    with TestClient(create_app(monitor)) as client:
        with client.websocket_connect("/") as websocket:
            assert websocket.receive_json()["type"] == "welcome"

            websocket.send_bytes(b"\xff\xfe not utf-8")
            websocket.send_bytes(json.dumps(request).encode("utf-8"))
            assert websocket.receive_json() == {
                "type": "onChainDataError",
                "mint": "x",
                "error": INVALID_ADDRESS_MESSAGE,
            }
            assert len(monitor.hub) == 1

    assert len(monitor.hub) == 0
