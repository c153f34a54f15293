"""
Exception taxonomy for the cross-ledger NFT bridge.

Every failure surfaces as a subclass of :class:`BridgeError`.  Leaf
classes also derive from the builtin that token code raises for the same
situation (``ValueError`` for bad input, ``PermissionError`` for
authorization) so callers can catch either.
"""


class BridgeError(Exception):
    """Base class for all bridge failures"""
    pass


class ConfigurationError(BridgeError, ValueError):
    """Invalid bridge configuration"""
    pass


class StorageError(BridgeError):
    """Persisted state could not be read or written"""
    pass


# ── Codec ─────────────────────────────────────────────────────────────

class EncodingError(BridgeError, ValueError):
    """A message could not be encoded (oversize or mismatched arrays)"""
    pass


class DecodingError(BridgeError, ValueError):
    """A payload could not be decoded (truncated or length mismatch)"""
    pass


class InvalidMessageType(DecodingError):
    """The leading tag byte does not match the decoder invoked"""

    def __init__(self, expected: int, got: int):
        super().__init__(f"Invalid message type: expected tag {expected}, got {got}")
        self.expected = expected
        self.got = got


# ── Invariants ────────────────────────────────────────────────────────

class InvariantViolation(BridgeError, ValueError):
    """A protocol invariant would be broken by the call"""
    pass


class TotalAmountMustBeOne(InvariantViolation):
    """Split amounts do not add up to exactly one whole unit"""

    def __init__(self, total: int, whole_unit: int):
        super().__init__(
            f"Split amounts sum to {total}, expected exactly one whole unit ({whole_unit})"
        )
        self.total = total
        self.whole_unit = whole_unit


class WholeUnitMismatch(InvariantViolation):
    """Token unit and configured whole unit disagree"""
    pass


class AssetAlreadyLive(InvariantViolation):
    """Applying the message would create a second representation"""
    pass


class OperationAlreadyApplied(AssetAlreadyLive):
    """An inbound message carries an operation id that was applied before"""

    def __init__(self, operation_id: bytes, origin: int):
        super().__init__(
            f"Operation 0x{operation_id.hex()} from domain {origin} was already applied"
        )
        self.operation_id = operation_id
        self.origin = origin


class DistributionFailed(BridgeError):
    """A fan-out batch failed and was rolled back"""
    pass


# ── Authorization ─────────────────────────────────────────────────────

class UnauthorizedError(BridgeError, PermissionError):
    """Caller is not allowed to perform the operation"""
    pass


class NotOwnerError(UnauthorizedError):
    pass


class NotMailboxError(UnauthorizedError):
    pass


class UnenrolledRouterError(UnauthorizedError):
    """Inbound message from a sender that is not the enrolled router"""
    pass


# ── Dispatch ──────────────────────────────────────────────────────────

class GasLimitNotSet(BridgeError):
    def __init__(self, domain: int, action: int):
        super().__init__(f"Gas limit not set for domain {domain}, action {action}")
        self.domain = domain
        self.action = action


class InsufficientFee(BridgeError, ValueError):
    def __init__(self, paid: int, required: int):
        super().__init__(f"Insufficient fee: paid {paid}, required {required}")
        self.paid = paid
        self.required = required


class ReentrantCall(BridgeError):
    """A bridge entry point was re-entered while already running"""
    pass
