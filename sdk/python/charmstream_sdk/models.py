"""
Data models for CharmStream SDK
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from .utils import Utils
from .vesting import vested


@dataclass(frozen=True)
class Outpoint:
    """Reference to a transaction output (txid, vout)"""
    txid: str
    vout: int

    @classmethod
    def parse(cls, text: str) -> "Outpoint":
        """
        Parse an outpoint from its ``txid:vout`` form.

        Raises:
            ValueError: if the text is not a 64-char hex txid and a
                non-negative output index
        """
        txid, sep, vout = (text or "").strip().partition(':')
        if not sep or not Utils.is_valid_txid(txid):
            raise ValueError(f"invalid outpoint {text!r} (expected txid:vout)")
        try:
            index = int(vout)
        except ValueError:
            raise ValueError(f"invalid outpoint {text!r} (expected txid:vout)") from None
        if index < 0:
            raise ValueError(f"invalid outpoint {text!r}: negative vout")
        return cls(txid=txid.lower(), vout=index)

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class StreamState:
    """One snapshot of a vesting stream, carried as charm data"""
    identity: bytes
    total_amount: int
    claimed_amount: int
    start_time: int
    end_time: int
    beneficiary_destination: bytes

    @property
    def remaining_amount(self) -> int:
        return self.total_amount - self.claimed_amount

    @property
    def is_exhausted(self) -> bool:
        return self.claimed_amount == self.total_amount

    def vested_at(self, now: int) -> int:
        return vested(self.total_amount, self.start_time, self.end_time, now)

    def with_claimed(self, claimed_amount: int) -> "StreamState":
        """Return a new snapshot differing only in claimed_amount"""
        return replace(self, claimed_amount=claimed_amount)

    def to_charm(self) -> Dict[str, Any]:
        """Serialize to the charm data attached to the stream output"""
        return {
            'identity': self.identity.hex(),
            'total_amount': self.total_amount,
            'claimed_amount': self.claimed_amount,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'beneficiary_destination': self.beneficiary_destination.hex(),
        }

    @classmethod
    def from_charm(cls, data: Dict[str, Any]) -> "StreamState":
        return cls(
            identity=bytes.fromhex(data['identity']),
            total_amount=int(data['total_amount']),
            claimed_amount=int(data['claimed_amount']),
            start_time=int(data['start_time']),
            end_time=int(data['end_time']),
            beneficiary_destination=bytes.fromhex(data['beneficiary_destination']),
        )


@dataclass(frozen=True)
class Transition:
    """
    A proposed state change. Create when previous_state is None,
    Claim otherwise.
    """
    previous_state: Optional[StreamState]
    proposed_state: StreamState
    now: int

    @property
    def is_create(self) -> bool:
        return self.previous_state is None

    @property
    def is_claim(self) -> bool:
        return self.previous_state is not None

    @property
    def claimed_delta(self) -> int:
        if self.previous_state is None:
            return 0
        return self.proposed_state.claimed_amount - self.previous_state.claimed_amount


@dataclass(frozen=True)
class AcceptedTransition:
    """Validator verdict for a transition that passed every check"""
    transition: Transition
    claimed_delta: int
    remaining_amount: int

    @property
    def state(self) -> StreamState:
        return self.transition.proposed_state


@dataclass(frozen=True)
class ExpectedShape:
    """
    What the constructed transaction must look like for an accepted
    transition: the designated inputs and where the stream continues.
    """
    accepted: AcceptedTransition
    inputs: Tuple[Outpoint, ...]
    stream_destination: bytes

    @property
    def stream_amount(self) -> int:
        if self.accepted.transition.is_create:
            return self.accepted.state.total_amount
        return self.accepted.remaining_amount


@dataclass(frozen=True)
class UtxoInfo:
    """Unspent output as reported by the node"""
    outpoint: Outpoint
    value_sats: int
    confirmations: int
    script_pubkey: bytes = b''


@dataclass(frozen=True)
class TxOutput:
    """Decoded transaction output"""
    index: int
    value_sats: int
    script_pubkey: bytes
    state: Optional[StreamState] = None


@dataclass(frozen=True)
class DecodedTransaction:
    """Structured view of a raw transaction"""
    txid: str
    inputs: Tuple[Outpoint, ...]
    outputs: Tuple[TxOutput, ...]
    raw_hex: str = ''


@dataclass(frozen=True)
class Proved:
    """
    Prover built the transaction(s); the spell tx is last.

    ``spell`` is the normalized spell the prover reports it embedded,
    when it returns one.
    """
    transactions: List[str] = field(default_factory=list)
    spell: Optional[Dict[str, Any]] = None

    @property
    def spell_tx_hex(self) -> str:
        return self.transactions[-1]


@dataclass(frozen=True)
class Unexecutable:
    """Prover could not execute the spell against the app contract"""
    message: str


@dataclass(frozen=True)
class DuplicateInput:
    """Prover has already seen the funding input"""
    message: str


@dataclass(frozen=True)
class AuctionTimeout:
    """Prover gave up waiting for a proof"""
    message: str


ProveResult = Union[Proved, Unexecutable, DuplicateInput, AuctionTimeout]
