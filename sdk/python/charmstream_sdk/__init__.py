"""
CharmStream Python SDK

Time-vested Bitcoin payment streams carried as charm state on a chain
of outpoints.

Features:
- Linear vesting calculator
- Stream state-transition validation
- Outpoint reservation ledger
- Verification of prover-built transactions
- Create and claim flows against a Bitcoin node and a spell prover
"""

__version__ = "1.0.0"
__author__ = "CharmStream Team"

from .client import NodeClient, ProverClient, ProveRequest
from .crypto import CharmStreamCrypto
from .exceptions import (
    CharmStreamError,
    InputError,
    TransitionRejected,
    RejectReason,
    OutpointAlreadyUsed,
    ShapeRejected,
    ShapeRejectReason,
    ProverError,
    BroadcastError,
)
from .flows import CreateParams, StreamFlows
from .head import HeadStore, StreamHead
from .ledger import OutpointLedger
from .models import (
    Outpoint,
    StreamState,
    Transition,
    AcceptedTransition,
    ExpectedShape,
    DecodedTransaction,
    TxOutput,
    Proved,
    Unexecutable,
    DuplicateInput,
    AuctionTimeout,
)
from .utils import Utils
from .validator import StreamValidator
from .verifier import TransactionVerifier
from .vesting import vested

__all__ = [
    "NodeClient",
    "ProverClient",
    "ProveRequest",
    "CharmStreamCrypto",
    "CharmStreamError",
    "InputError",
    "TransitionRejected",
    "RejectReason",
    "OutpointAlreadyUsed",
    "ShapeRejected",
    "ShapeRejectReason",
    "ProverError",
    "BroadcastError",
    "CreateParams",
    "StreamFlows",
    "HeadStore",
    "StreamHead",
    "OutpointLedger",
    "Outpoint",
    "StreamState",
    "Transition",
    "AcceptedTransition",
    "ExpectedShape",
    "DecodedTransaction",
    "TxOutput",
    "Proved",
    "Unexecutable",
    "DuplicateInput",
    "AuctionTimeout",
    "Utils",
    "StreamValidator",
    "TransactionVerifier",
    "vested",
]
