"""
CometBFT-specific exception hierarchy for the ledger node.

Provides typed exceptions for every stage of driving the engine binary so
callers can tell a broken installation apart from a runtime failure.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class CometBFTError(Exception):
    """Base exception for all engine supervision errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Start-up Errors ====================


class EnginePathError(CometBFTError):
    """Raised when the engine binary location variable is not valid text."""
    pass


class InitError(CometBFTError):
    """Raised when the engine `init` subcommand cannot run or exits non-zero.

    A failed init means the engine installation itself is broken.
    """
    pass


class StartUpError(CometBFTError):
    """Raised when the engine `start` process cannot be spawned."""
    pass


# ==================== Document Errors ====================


class ConfigLoadError(CometBFTError):
    """Raised when config.toml cannot be read or parsed."""
    pass


class OpenWriteConfigError(CometBFTError):
    """Raised when config.toml cannot be opened for writing."""
    pass


class ConfigSerializeError(CometBFTError):
    """Raised when the patched config cannot be serialized to TOML."""
    pass


class WriteConfigError(CometBFTError):
    """Raised when writing the serialized config fails."""
    pass


class GenesisError(CometBFTError):
    """Raised when genesis.json cannot be read, converted or rewritten.

    Covers an invalid chain id and a genesis time the engine cannot represent.
    """
    pass


class ValidatorKeyError(CometBFTError):
    """Raised when validator key or signing state files cannot be written."""
    pass


# ==================== Runtime Errors ====================


class EngineRuntimeError(CometBFTError):
    """Raised when the engine exits unsuccessfully or cannot be waited on."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.returncode = returncode


# ==================== Administrative Errors ====================


class ResetError(CometBFTError):
    """Raised when the engine state reset fails."""
    pass


class RollBackError(CometBFTError):
    """Raised when the engine rollback fails or its output cannot be parsed."""

    PHRASE_NOT_FOUND = "phrase_not_found"
    MISSING_HEIGHT = "missing_height"
    INVALID_HEIGHT = "invalid_height"
    SPAWN = "spawn"
    DECODE = "decode"

    def __init__(
        self,
        message: str,
        stage: str,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.stage = stage


# ==================== Utility Functions ====================


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, CometBFTError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, EngineRuntimeError) and exc.returncode is not None:
        context["returncode"] = exc.returncode

    if isinstance(exc, RollBackError):
        context["stage"] = exc.stage

    return context
