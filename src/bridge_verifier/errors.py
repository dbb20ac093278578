"""
Error taxonomy for the bridge verifier.

Chain-interaction errors propagate to the calling scenario untouched; only
gas estimation failures are recovered locally inside ChainClient.
"""


class BridgeVerifierError(Exception):
    """Base class for every error raised by this package."""


class RpcError(BridgeVerifierError):
    """Transport or endpoint failure while talking to a chain."""

    def __init__(self, message: str, chain: str | None = None):
        self.chain = chain
        prefix = f"[{chain}] " if chain else ""
        super().__init__(f"{prefix}{message}")


class InvalidAmountError(BridgeVerifierError, ValueError):
    """A value could not be parsed as an Amount, or two scales were mixed."""


class MalformedSnapshotError(BridgeVerifierError):
    """Two balance snapshots cannot be compared field by field."""


class EventNotFoundError(BridgeVerifierError):
    """An expected protocol event is absent from a transaction receipt."""

    def __init__(self, event_name: str, tx_hash: str | None = None):
        self.event_name = event_name
        self.tx_hash = tx_hash
        where = f" in receipt {tx_hash}" if tx_hash else ""
        super().__init__(f"{event_name} event not found{where}")


class EventDecodeError(BridgeVerifierError):
    """A log carried the expected topic but its payload could not be decoded."""


class WaitTimeoutError(BridgeVerifierError, TimeoutError):
    """A bounded wait for an on-chain event expired."""

    def __init__(
        self,
        event_name: str,
        timeout: float,
        message_hash: str | None = None,
        detail: str | None = None,
    ):
        self.event_name = event_name
        self.timeout = timeout
        self.message_hash = message_hash
        message = f"Timed out after {timeout}s waiting for {event_name}"
        if message_hash:
            message += f" (messageHash={message_hash})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class SubgraphTimeoutError(WaitTimeoutError):
    """The subgraph did not index the expected deposits within the retry budget."""


class GasEstimationFailure(BridgeVerifierError):
    """Gas estimation failed; ChainClient recovers with a fallback gas limit."""


class VerificationError(BridgeVerifierError, AssertionError):
    """A verification check did not hold."""


class TransactionFailedError(VerificationError):
    """A receipt reported a reverted transaction."""


class FieldMismatchError(VerificationError):
    """A decoded event field differs from the expected value."""

    def __init__(self, event_name: str, field: str, expected, actual):
        self.event_name = event_name
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{event_name}.{field} mismatch: expected {expected!r}, got {actual!r}"
        )


class BalanceVerificationError(VerificationError):
    """Balance deltas do not match the expected transfer."""

    def __init__(self, result):
        self.result = result
        super().__init__(result.reason)
