from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from solana_launch_monitor.config.settings import AppConfig, get_app_config
from solana_launch_monitor.monitoring.metrics import METRICS
from solana_launch_monitor.utils.constants import LAMPORTS_PER_SOL, PUMP_FUN_PROGRAM_ID, SYSTEM_PROGRAM_ID

FEED_URL = "wss://feed.test/api/data"
RPC_URL = "https://rpc.test/"

_CONFIG_ENV_VARS = (
    "FEED__URL",
    "RPC__URL",
    "RPC__PROGRAM_ID",
    "SERVER__PORT",
    "SERVER__CORS_ORIGIN",
    "MONITOR__POLL_INTERVAL_SECONDS",
    "MONITORING__LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MONITOR_CONFIG_FILE", str(tmp_path / "absent.toml"))
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    METRICS.reset()
    get_app_config.cache_clear()
    yield
    get_app_config.cache_clear()
    METRICS.reset()


@pytest.fixture
def make_config():
    def _make(**sections: Any) -> AppConfig:
        values: Dict[str, Any] = {
            "feed": {"url": FEED_URL},
            "rpc": {"url": RPC_URL, "program_id": PUMP_FUN_PROGRAM_ID},
        }
        values.update(sections)
        return AppConfig(**values)

    return _make


def _trade_detail(
    *,
    signature: str = "sig-1",
    trader: str = "TRADER",
    mint: str = "MINT",
    sol_change: float = -1.5,
    logs: Optional[List[str]] = None,
    program_id: str = PUMP_FUN_PROGRAM_ID,
    extra_instructions: int = 0,
    block_time: Optional[int] = 1_700_000_000,
    pre_token_balances: Optional[List[Dict[str, Any]]] = None,
    post_token_balances: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """A ``jsonParsed`` getTransaction result for one program trade."""

    if logs is None:
        logs = [
            f"Program {program_id} invoke [1]",
            "Program log: Instruction: Buy",
            "Program log: 1234.5 tokens bought: done",
            f"Program {program_id} success",
        ]
    change = int(sol_change * LAMPORTS_PER_SOL)
    curve_change = -change - (5_000 if change < 0 else -5_000)
    account_keys = [
        {"pubkey": trader, "signer": True, "writable": True},
        {"pubkey": "CURVE", "signer": False, "writable": True},
        {"pubkey": SYSTEM_PROGRAM_ID, "signer": False, "writable": False},
        {"pubkey": program_id, "signer": False, "writable": False},
        {"pubkey": mint, "signer": False, "writable": False},
    ]
    instructions = [
        {
            "programId": program_id,
            "accounts": ["GLOBAL", "FEE_RECIPIENT", "CURVE_ATA", "CURVE", mint, trader],
            "data": "3Bxs4Bc3VYuGVB19",
        }
    ]
    instructions.extend(
        {"programId": "ComputeBudget111111111111111111111111111111", "accounts": [], "data": "K1FDJ7"}
        for _ in range(extra_instructions)
    )
    return {
        "blockTime": block_time,
        "slot": 250_000_000,
        "meta": {
            "err": None,
            "logMessages": logs,
            "preBalances": [10 * LAMPORTS_PER_SOL, 5 * LAMPORTS_PER_SOL, 1, 1, 1_461_600],
            "postBalances": [
                10 * LAMPORTS_PER_SOL + change,
                5 * LAMPORTS_PER_SOL + curve_change,
                1,
                1,
                1_461_600,
            ],
            "preTokenBalances": pre_token_balances or [],
            "postTokenBalances": post_token_balances or [],
        },
        "transaction": {
            "signatures": [signature],
            "message": {"accountKeys": account_keys, "instructions": instructions},
        },
    }


@pytest.fixture
def trade_detail():
    return _trade_detail
