"""Shared constants for Solana launch monitoring."""

import time


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds, the unit used on the viewer wire."""
    return int(time.time() * 1000)


LAMPORTS_PER_SOL = 1_000_000_000

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

# Pump.fun bonding-curve program.
PUMP_FUN_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"

__all__ = ["now_ms", "LAMPORTS_PER_SOL", "SYSTEM_PROGRAM_ID", "PUMP_FUN_PROGRAM_ID"]
