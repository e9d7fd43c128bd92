"""
Parse the block height out of `cometbft rollback` output.

The engine prints "Rolled back state to height %d and hash %X". This is a
contract with a pinned engine version: a reworded message breaks the parse.
"""

from __future__ import annotations

from ledger_node.core.cometbft_exceptions import RollBackError

ROLLBACK_PHRASE = "Rolled back state to height"
MAX_HEIGHT = 2**64 - 1


def parse_rollback_height(stdout: str) -> int:
    """Return the height reported by the engine rollback command.

    Raises:
        RollBackError: With stage phrase_not_found, missing_height or invalid_height
    """
    _, found, right = stdout.partition(ROLLBACK_PHRASE)
    if not found:
        raise RollBackError(
            "Missing expected rollback message in CometBFT stdout",
            stage=RollBackError.PHRASE_NOT_FOUND,
        )

    tokens = right.split()
    if not tokens:
        raise RollBackError(
            "Missing expected block height in CometBFT stdout message",
            stage=RollBackError.MISSING_HEIGHT,
        )

    token = tokens[0]
    # int() would also accept signs and underscores
    if not token.isascii() or not token.isdigit() or int(token) > MAX_HEIGHT:
        raise RollBackError(
            f"Invalid block height in CometBFT stdout message: {token!r}",
            stage=RollBackError.INVALID_HEIGHT,
            details={"token": token},
        )
    return int(token)
