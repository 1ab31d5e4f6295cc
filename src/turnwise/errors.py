"""Error tags and exceptions shared across the engine.

Tool failures travel as ``ToolResult`` envelopes tagged with an
``ErrorCode``. Exceptions are reserved for configuration mistakes and
for cancellation.
"""

from __future__ import annotations

import enum


class ErrorCode(str, enum.Enum):
    """Stable error tags surfaced to the oracle, the client and the record."""

    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    TOOL_WRAPPER_ERROR = "TOOL_WRAPPER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    CODE_EXECUTION_TIMEOUT = "CODE_EXECUTION_TIMEOUT"
    CODE_EXECUTION_FAILED = "CODE_EXECUTION_FAILED"
    CODE_EXECUTION_NO_RESULT = "CODE_EXECUTION_NO_RESULT"
    CODE_GENERATION_INVALID = "CODE_GENERATION_INVALID"
    CODE_GENERATION_FAILED = "CODE_GENERATION_FAILED"
    CODE_GENERATION_EMPTY = "CODE_GENERATION_EMPTY"
    CODE_REGENERATION_FAILED = "CODE_REGENERATION_FAILED"
    INTERNAL_CODE_MISSING = "INTERNAL_CODE_MISSING"
    PARSED_DATA_MISSING = "PARSED_DATA_MISSING"

    DATASET_NOT_FOUND = "DATASET_NOT_FOUND"
    DATA_FETCH_FAILED = "DATA_FETCH_FAILED"
    CSV_PARSE_ERROR = "CSV_PARSE_ERROR"
    MISSING_ANALYSIS_DATA = "MISSING_ANALYSIS_DATA"

    MAX_ITERATIONS_REACHED = "MAX_ITERATIONS_REACHED"
    ORACLE_UNAVAILABLE = "ORACLE_UNAVAILABLE"
    CANCELLED = "CANCELLED"
    AGENT_RUNNER_ERROR = "AGENT_RUNNER_ERROR"


# Failures the refinement loop can repair by regenerating code.
SANDBOX_ERROR_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.CODE_EXECUTION_TIMEOUT,
        ErrorCode.CODE_EXECUTION_FAILED,
        ErrorCode.CODE_EXECUTION_NO_RESULT,
        ErrorCode.CODE_GENERATION_INVALID,
    }
)

# Repeating the identical call cannot change these outcomes.
NON_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.UNKNOWN_TOOL,
        ErrorCode.VALIDATION_ERROR,
    }
)

# Short user-facing messages for terminal turn errors.
USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MAX_ITERATIONS_REACHED: (
        "I could not complete the request within the allowed number of steps."
    ),
    ErrorCode.ORACLE_UNAVAILABLE: "The assistant is temporarily unavailable.",
    ErrorCode.CANCELLED: "The request was cancelled.",
    ErrorCode.AGENT_RUNNER_ERROR: "An internal error occurred while handling the request.",
    ErrorCode.CODE_REGENERATION_FAILED: "I could not produce working analysis code.",
    ErrorCode.INTERNAL_CODE_MISSING: "No analysis code was available to execute.",
}


def user_message(code: ErrorCode) -> str:
    """Return the short message shown to the user for a terminal error."""
    if code in USER_MESSAGES:
        return USER_MESSAGES[code]
    if code in SANDBOX_ERROR_CODES:
        return "The analysis code kept failing after several attempts."
    return "The request could not be completed."


class TurnwiseError(Exception):
    """Base class for turnwise exceptions."""


class ToolRegistrationError(TurnwiseError):
    """A tool could not be registered (e.g. it claims a reserved action name)."""


class TurnCancelled(TurnwiseError):
    """The turn's cancellation signal fired while a call was in flight."""
