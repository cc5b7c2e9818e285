"""Error Hierarchy - typed, categorized exceptions for every PropChain failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity and outcome
    - outcome distinguishes "definitely did not happen" from "unknown, re-check"
    - Everything raised before a ledger submission is Outcome.NOT_APPLIED
    - Only FinalityError (and its subclasses) carries Outcome.UNKNOWN
    - Anything raised after ledger finality is re-marked Outcome.APPLIED with the
      confirmed tx_ref, whatever its category
    - to_response() produces the REST envelope; no internal details leaked

Design Decisions:
    - Single hierarchy with PropChainError base: FastAPI global handler catches all
    - category doubles as the error "kind" in responses
    - AmountOverflowError instead of shadowing the builtin OverflowError
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone

from propchain.core.domain_types import Outcome


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error taxonomy. Serialized as the response "kind"."""
    VALIDATION = "validation"
    PRECONDITION = "precondition"
    ENCODING = "encoding"
    SUBMISSION = "submission"
    FINALITY = "finality"
    READ = "read"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    listing_id: str | None = None
    token_id: int | None = None
    escrow_id: int | None = None
    agent_address: str | None = None
    tx_ref: str | None = None
    operation: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class PropChainError(Exception):
    """Base exception for all PropChain errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        outcome: Outcome = Outcome.NOT_APPLIED,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.outcome = outcome

    @property
    def retryable(self) -> bool:
        """Whether the caller may try again after re-checking ledger state."""
        return self.category in (
            ErrorCategory.FINALITY, ErrorCategory.READ, ErrorCategory.DATABASE,
        )

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "kind": self.category.value,
                "code": self.code,
                "message": self.message,
                "outcome": self.outcome.value,
                "retryable": self.retryable,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "listing_id": self.context.listing_id,
                    "token_id": _as_text(self.context.token_id),
                    "escrow_id": _as_text(self.context.escrow_id),
                    "agent_address": self.context.agent_address,
                    "tx_ref": self.context.tx_ref,
                    "operation": self.context.operation,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


def _as_text(value: int | None) -> str | None:
    # u256 ids exceed JSON-safe integers in most clients
    return None if value is None else str(value)


# ─── Validation (400) ───────────────────────────────────────────

class ValidationError(PropChainError):
    """Bad input, rejected before any ledger call."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class InvalidRatingError(ValidationError):
    """Review rating outside 1..5."""
    def __init__(self, rating: object, context: ErrorContext | None = None):
        super().__init__(
            f"Rating must be an integer between 1 and 5, got {rating!r}",
            "rating", context,
        )
        self.code = "INVALID_RATING"
        self.rating = rating


# ─── Preconditions (409) ────────────────────────────────────────

class PreconditionError(PropChainError):
    """Entity is in the wrong state for the requested transition."""
    def __init__(self, message: str, code: str, context: ErrorContext | None = None):
        super().__init__(
            message, code, ErrorCategory.PRECONDITION,
            ErrorSeverity.WARNING, context, 409,
        )


class AlreadyMintedError(PreconditionError):
    def __init__(self, listing_id: str, token_id: int | None, context: ErrorContext | None = None):
        super().__init__(
            f"Listing '{listing_id}' is already minted"
            + (f" as token {token_id}" if token_id is not None else ""),
            "ALREADY_MINTED", context,
        )
        self.token_id = token_id


class AlreadyVerifiedError(PreconditionError):
    def __init__(self, listing_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"Listing '{listing_id}' is already verified",
            "ALREADY_VERIFIED", context,
        )


class NotTokenizedError(PreconditionError):
    """Listing has no confirmed token; escrow, reviews and verification are refused."""
    def __init__(self, subject: str, context: ErrorContext | None = None):
        super().__init__(
            f"{subject} is not tokenized on the ledger",
            "NOT_TOKENIZED", context,
        )


class EscrowEncumberedError(PreconditionError):
    def __init__(self, token_id: int, escrow_id: int, context: ErrorContext | None = None):
        super().__init__(
            f"Token {token_id} already has open escrow {escrow_id}",
            "ESCROW_ENCUMBERED", context,
        )
        self.escrow_id = escrow_id


class ListingTokenizedError(PreconditionError):
    """Tokenized listings cannot be deleted."""
    def __init__(self, listing_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"Listing '{listing_id}' is tokenized and cannot be deleted",
            "LISTING_TOKENIZED", context,
        )


# ─── Encoding (400) ─────────────────────────────────────────────

class EncodingError(PropChainError):
    """Value cannot be represented in a ledger encoding."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "ENCODING_ERROR", ErrorCategory.ENCODING,
            ErrorSeverity.ERROR, context, 400,
        )


class AmountOverflowError(EncodingError):
    """Integer exceeds the ledger's integer width."""
    def __init__(self, value: int | None, bits: int, context: ErrorContext | None = None):
        super().__init__(
            f"Value does not fit in {bits} bits", context,
        )
        self.code = "AMOUNT_OVERFLOW"
        self.value = value
        self.bits = bits


# ─── Ledger Submission (502) ────────────────────────────────────

class SubmissionError(PropChainError):
    """Ledger rejected the call. Terminal, no local state change."""
    def __init__(
        self, message: str, code: str = "SUBMISSION_REJECTED",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.SUBMISSION,
            ErrorSeverity.ERROR, context, 502,
        )


class TransactionRevertedError(SubmissionError):
    """Transaction was included but its execution reverted."""
    def __init__(self, tx_ref: str, reason: str | None = None, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.tx_ref = tx_ref
        super().__init__(
            f"Transaction {tx_ref} reverted"
            + (f": {reason}" if reason else ""),
            "TRANSACTION_REVERTED", ctx,
        )
        self.tx_ref = tx_ref
        self.reason = reason


class MintFailedError(SubmissionError):
    """Mint reverted on the ledger; listing stays unminted."""
    def __init__(self, listing_id: str, reason: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            f"Mint of listing '{listing_id}' failed"
            + (f": {reason}" if reason else ""),
            "MINT_FAILED", context,
        )


class LedgerNotConfiguredError(SubmissionError):
    """Contract address for an operation is not configured."""
    def __init__(self, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Ledger contract for '{operation}' is not configured",
            "LEDGER_NOT_CONFIGURED", context,
        )


# ─── Ledger Finality (504) ──────────────────────────────────────

class FinalityError(PropChainError):
    """No confirmation within the bounded wait. Outcome unknown: re-read, then decide."""
    def __init__(self, message: str, tx_ref: str | None = None, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.tx_ref = tx_ref or ctx.tx_ref
        super().__init__(
            message, "FINALITY_TIMEOUT", ErrorCategory.FINALITY,
            ErrorSeverity.CRITICAL, ctx, 504, Outcome.UNKNOWN,
        )
        self.tx_ref = tx_ref


# ─── Reads / Infrastructure ─────────────────────────────────────

class ReadError(PropChainError):
    """Ledger read failed."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "LEDGER_READ_ERROR", ErrorCategory.READ,
            ErrorSeverity.ERROR, context, 502,
        )


class ResourceNotFoundError(PropChainError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class DatabaseError(PropChainError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
