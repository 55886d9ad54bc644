"""
Error taxonomy for the auction coordinator.

Every error names the attempted action and says whether retrying is
expected to help. Coordinators catch these only to decide between retrying
and surfacing; nothing here is swallowed.

    StateViolation        action not permitted in the current state     no retry
    AuthorizationError    caller is not the required seller/winner       no retry
    AlreadyProcessed      bid already compared                           skip in batch
    StaleState            authoritative state moved under a cached view  re-read, retry once
    EncryptionFailure     encrypt/decrypt/prove failed                   no retry
    Timeout               a suspension point exceeded its bound          caller's choice
    NetworkOrLedgerError  transport or uncategorized ledger rejection   no retry
"""

from typing import Optional


class SealbidError(Exception):
    """Base class for coordinator errors."""

    retryable = False

    def __init__(self, action: str, detail: str, retryable: Optional[bool] = None):
        self.action = action
        self.detail = detail
        if retryable is not None:
            self.retryable = retryable
        super().__init__(self._render())

    def _render(self) -> str:
        hint = "retrying may help" if self.retryable else "retrying will not help"
        return f"{self.action}: {self.detail} ({hint})"


class StateViolation(SealbidError):
    """Action attempted in a state that does not permit it."""

    def __init__(self, action: str, state, detail: str = ""):
        self.state = state
        state_name = getattr(state, "value", state)
        message = f"not permitted in state {state_name}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(action, message)


class AuthorizationError(SealbidError):
    """Caller identity is not the one the action requires."""

    def __init__(
        self,
        action: str,
        detail: str,
        required: Optional[bytes] = None,
        actual: Optional[bytes] = None,
    ):
        self.required = required
        self.actual = actual
        super().__init__(action, detail)

    @classmethod
    def not_role(cls, action: str, role: str, required: bytes, actual: bytes) -> "AuthorizationError":
        return cls(
            action,
            f"caller 0x{actual.hex()} is not the {role} 0x{required.hex()}",
            required=required,
            actual=actual,
        )


class AlreadyProcessed(SealbidError):
    """Bid was already compared against the leader."""

    def __init__(self, action: str, bid: bytes):
        self.bid = bid
        super().__init__(action, f"bid 0x{bid.hex()} already processed")


class StaleState(SealbidError):
    """Authoritative state diverged from a locally cached assumption."""

    retryable = True


class EncryptionFailure(SealbidError):
    """The encryption service could not encrypt, decrypt or prove."""


class Timeout(SealbidError):
    """A suspension point exceeded its configured bound."""

    retryable = True

    def __init__(self, action: str, seconds: float):
        self.seconds = seconds
        super().__init__(action, f"no response within {seconds:g}s; ledger state unknown, re-read before acting")


class NetworkOrLedgerError(SealbidError):
    """Transport failure or ledger rejection not covered by a narrower type."""


class RecordNotFound(NetworkOrLedgerError):
    """No auction or bid record exists at the address."""

    def __init__(self, action: str, kind: str, address: bytes):
        self.kind = kind
        self.address = address
        super().__init__(action, f"no {kind} record at 0x{address.hex()}")


class InvalidInput(SealbidError):
    """Client-side parameter validation failed before anything was submitted."""


class BatchInterrupted(SealbidError):
    """
    A batch loop stopped on a blocking error.

    Carries how far the batch got; the cause is chained as __cause__.
    """

    def __init__(self, action: str, processed: int, skipped: int, cause: SealbidError):
        self.processed = processed
        self.skipped = skipped
        self.cause = cause
        super().__init__(
            action,
            f"stopped after {processed} processed, {skipped} skipped: {cause.action}: {cause.detail}",
            retryable=cause.retryable,
        )


__all__ = [
    "SealbidError",
    "StateViolation",
    "AuthorizationError",
    "AlreadyProcessed",
    "StaleState",
    "EncryptionFailure",
    "Timeout",
    "NetworkOrLedgerError",
    "RecordNotFound",
    "InvalidInput",
    "BatchInterrupted",
]
