"""Heuristic trade extraction from parsed program transactions.

The parser works on ``getTransaction`` results in ``jsonParsed`` encoding (the
raw ``json`` encoding, with index-based account references, is accepted too).
It is a pure function of its input: no clocks, no shared state.

Token amounts are resolved by an ordered list of strategies. The default order is
log scraping first (``tokens bought:`` / ``tokens sold:`` lines), then the
post/pre token-balance delta of the resolved mint. Either can be swapped for a
structured instruction decoder without touching callers.
"""

from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional, Protocol, Sequence

from ..config.settings import ParserConfig
from ..datalake.schemas import AnalyzedTransaction, TransactionType
from ..utils.constants import LAMPORTS_PER_SOL, SYSTEM_PROGRAM_ID


class MalformedTransactionError(ValueError):
    """Raised when a transaction detail lacks the structure every result has."""


def account_key(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, Mapping):
        value = entry.get("pubkey")
        return value if isinstance(value, str) else None
    return None


def message_account_keys(detail: Mapping[str, Any]) -> List[Optional[str]]:
    return [account_key(entry) for entry in _message(detail).get("accountKeys") or []]


def instruction_program_id(instruction: Mapping[str, Any], account_keys: Sequence[Optional[str]]) -> Optional[str]:
    program_id = instruction.get("programId")
    if isinstance(program_id, str):
        return program_id
    index = instruction.get("programIdIndex")
    if isinstance(index, int) and 0 <= index < len(account_keys):
        return account_keys[index]
    return None


def instruction_accounts(instruction: Mapping[str, Any], account_keys: Sequence[Optional[str]]) -> List[Optional[str]]:
    resolved: List[Optional[str]] = []
    for entry in instruction.get("accounts") or []:
        if isinstance(entry, int):
            resolved.append(account_keys[entry] if 0 <= entry < len(account_keys) else None)
        else:
            resolved.append(account_key(entry))
    return resolved


def find_program_instruction(detail: Mapping[str, Any], program_id: str) -> Optional[Mapping[str, Any]]:
    """Return the first top-level instruction invoking *program_id*."""

    account_keys = message_account_keys(detail)
    for instruction in _message(detail).get("instructions") or []:
        if isinstance(instruction, Mapping) and instruction_program_id(instruction, account_keys) == program_id:
            return instruction
    return None


def mint_account(accounts: Sequence[Optional[str]], index: int) -> Optional[str]:
    """Mint slot of the program's buy/sell instruction layout."""

    if 0 <= index < len(accounts):
        return accounts[index]
    return None


def lamport_delta(meta: Mapping[str, Any], index: int) -> Optional[int]:
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    if index >= len(pre) or index >= len(post):
        return None
    if pre[index] is None or post[index] is None:
        return None
    return int(post[index]) - int(pre[index])


def _message(detail: Mapping[str, Any]) -> Mapping[str, Any]:
    transaction = detail.get("transaction")
    if not isinstance(transaction, Mapping):
        raise MalformedTransactionError("transaction detail has no transaction body")
    message = transaction.get("message")
    if not isinstance(message, Mapping):
        raise MalformedTransactionError("transaction detail has no message")
    return message


class TokenAmountStrategy(Protocol):
    name: str

    def extract(self, detail: Mapping[str, Any], logs: Sequence[str], mint: Optional[str]) -> float:
        ...


class LogTokenAmountStrategy:
    """Reads the amount printed in the program's trade log line."""

    name = "log"
    _MARKERS = ("tokens bought:", "tokens sold:")
    _PATTERN = re.compile(r"(\d+\.?\d*)\s*(tokens\s*(bought|sold))", re.IGNORECASE)

    def extract(self, detail: Mapping[str, Any], logs: Sequence[str], mint: Optional[str]) -> float:
        line = next((log for log in logs if any(marker in log for marker in self._MARKERS)), None)
        if line is None:
            return 0.0
        match = self._PATTERN.search(line)
        if not match:
            return 0.0
        return float(match.group(1))


class BalanceDeltaTokenAmountStrategy:
    """Absolute change of the mint's token balance, scaled by its decimals."""

    name = "balance_delta"

    def extract(self, detail: Mapping[str, Any], logs: Sequence[str], mint: Optional[str]) -> float:
        if not mint:
            return 0.0
        meta = detail.get("meta") or {}
        post = next((b for b in meta.get("postTokenBalances") or [] if b.get("mint") == mint), None)
        if post is None:
            return 0.0
        pre = next(
            (
                b
                for b in meta.get("preTokenBalances") or []
                if b.get("mint") == mint and b.get("owner") == post.get("owner")
            ),
            None,
        )
        post_amount = _raw_amount(post)
        pre_amount = _raw_amount(pre) if pre is not None else 0
        decimals = int((post.get("uiTokenAmount") or {}).get("decimals") or 0)
        return abs(post_amount - pre_amount) / (10 ** decimals)


def _raw_amount(balance: Mapping[str, Any]) -> int:
    amount = (balance.get("uiTokenAmount") or {}).get("amount")
    try:
        return int(amount)
    except (TypeError, ValueError):
        return 0


DEFAULT_TOKEN_AMOUNT_STRATEGIES: tuple[TokenAmountStrategy, ...] = (
    LogTokenAmountStrategy(),
    BalanceDeltaTokenAmountStrategy(),
)


class TransactionParser:
    """Turns a program transaction into an ``AnalyzedTransaction`` or ``None``."""

    def __init__(
        self,
        program_id: str,
        config: Optional[ParserConfig] = None,
        token_amount_strategies: Sequence[TokenAmountStrategy] = DEFAULT_TOKEN_AMOUNT_STRATEGIES,
    ) -> None:
        self._program_id = program_id
        self._config = config or ParserConfig()
        self._strategies = tuple(token_amount_strategies)

    @property
    def program_id(self) -> str:
        return self._program_id

    def parse(self, detail: Mapping[str, Any]) -> Optional[AnalyzedTransaction]:
        message = _message(detail)
        meta = detail.get("meta") or {}
        logs: List[str] = [log for log in meta.get("logMessages") or [] if isinstance(log, str)]
        instructions = message.get("instructions") or []
        signatures = (detail.get("transaction") or {}).get("signatures") or []
        signature = signatures[0] if signatures else None

        tx_type = self.classify_logs(logs)

        mint: Optional[str] = None
        trader: Optional[str] = None
        sol_amount = 0.0
        token_amount = 0.0

        account_keys = message_account_keys(detail)
        instruction = find_program_instruction(detail, self._program_id)
        if instruction is not None:
            mint = mint_account(
                instruction_accounts(instruction, account_keys), self._config.mint_account_index
            )
            token_amount = self._token_amount(detail, logs, mint)
            trader, sol_amount = self._largest_sol_mover(meta, account_keys)

        if tx_type == TransactionType.OTHER or not mint or not trader or sol_amount == 0 or not signature:
            return None

        return AnalyzedTransaction(
            signature=signature,
            type=tx_type,
            mint=mint,
            trader=trader,
            sol_amount=sol_amount,
            token_amount=token_amount,
            block_time=detail.get("blockTime"),
            is_bundle=(
                len(instructions) > self._config.bundle_instruction_threshold
                or len(logs) > self._config.bundle_log_threshold
            ),
            whale_detected=sol_amount > self._config.whale_threshold_sol,
            logs=tuple(logs[: self._config.log_excerpt_lines]),
        )

    @staticmethod
    def classify_logs(logs: Sequence[str]) -> TransactionType:
        if any("Instruction: Buy" in log for log in logs):
            return TransactionType.BUY
        if any("Instruction: Sell" in log for log in logs):
            return TransactionType.SELL
        return TransactionType.OTHER

    def _token_amount(self, detail: Mapping[str, Any], logs: Sequence[str], mint: Optional[str]) -> float:
        for strategy in self._strategies:
            amount = strategy.extract(detail, logs, mint)
            if amount:
                return amount
        return 0.0

    def _largest_sol_mover(
        self, meta: Mapping[str, Any], account_keys: Sequence[Optional[str]]
    ) -> tuple[Optional[str], float]:
        best_change = 0.0
        best_account: Optional[str] = None
        for index, key in enumerate(account_keys):
            if key is None or key in (SYSTEM_PROGRAM_ID, self._program_id):
                continue
            delta = lamport_delta(meta, index)
            if delta is None:
                continue
            change = delta / LAMPORTS_PER_SOL
            if abs(change) > abs(best_change):
                best_change = change
                best_account = key
        return best_account, abs(best_change)


__all__ = [
    "BalanceDeltaTokenAmountStrategy",
    "DEFAULT_TOKEN_AMOUNT_STRATEGIES",
    "LogTokenAmountStrategy",
    "MalformedTransactionError",
    "TokenAmountStrategy",
    "TransactionParser",
    "find_program_instruction",
    "lamport_delta",
    "message_account_keys",
    "mint_account",
]
