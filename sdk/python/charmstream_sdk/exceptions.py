"""
Exceptions raised by CharmStream SDK
"""

import enum
from dataclasses import dataclass
from typing import Optional


class RejectReason(enum.Enum):
    """Why the state validator refused a transition"""
    INVALID_CREATE_PARAMETERS = "InvalidCreateParameters"
    OVERCLAIM = "Overclaim"
    NON_MONOTONIC_CLAIM = "NonMonotonicClaim"
    IMMUTABLE_FIELD_CHANGED = "ImmutableFieldChanged"
    EXCEEDS_VESTED = "ExceedsVested"


class ShapeRejectReason(enum.Enum):
    """Why a constructed transaction does not match the accepted transition"""
    MISSING_EXPECTED_INPUT = "MissingExpectedInput"
    MISSING_PAYOUT_OUTPUT = "MissingPayoutOutput"
    MISSING_STREAM_OUTPUT = "MissingStreamOutput"
    AMOUNT_MISMATCH = "AmountMismatch"


@dataclass(frozen=True)
class Diagnostics:
    """Context kept for reconciling a failed external call"""
    flow: str
    rendered_request: str
    request_hash: str
    raw_error: str


class CharmStreamError(Exception):
    """Base class for all SDK errors"""


class InputError(CharmStreamError):
    """Missing or malformed parameters, caught before any external call"""


class TransitionRejected(CharmStreamError):
    """The stream state validator refused the transition"""

    def __init__(self, reason: RejectReason, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


class OutpointAlreadyUsed(CharmStreamError):
    """The outpoint was already submitted to the prover"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(
            f"AlreadyUsed: {key} was already used in a prior spell prove. "
            "Choose a different UTXO."
        )


class ShapeRejected(CharmStreamError):
    """The prover's transaction does not implement the accepted transition"""

    def __init__(self, reason: ShapeRejectReason, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


class ExternalServiceError(CharmStreamError):
    """A prover or node call failed"""

    def __init__(self, message: str, diagnostics: Optional[Diagnostics] = None):
        self.diagnostics = diagnostics
        super().__init__(message)


class ProverError(ExternalServiceError):
    """Proof generation failed; ``result`` is the typed failure, if any"""

    def __init__(self, message: str, result=None, diagnostics: Optional[Diagnostics] = None):
        self.result = result
        super().__init__(message, diagnostics)


class NodeError(ExternalServiceError):
    """Bitcoin node RPC call failed"""


class BroadcastError(NodeError):
    """Node refused the transaction"""
