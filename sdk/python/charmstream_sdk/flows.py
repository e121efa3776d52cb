"""
Create and claim flows

Each flow gathers external facts, gates the outpoints through the
reservation ledger, validates the transition, proves it, verifies the
prover's transaction, broadcasts it and persists the new stream head.
"""

import base64
import logging
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .client import NodeClient, ProveRequest, ProverClient
from .config import Settings, get_settings
from .crypto import CharmStreamCrypto
from .exceptions import BroadcastError, Diagnostics, InputError, NodeError, ProverError
from .head import HeadStore, StreamHead
from .ledger import OutpointLedger
from .models import (
    AcceptedTransition,
    DecodedTransaction,
    ExpectedShape,
    Outpoint,
    Proved,
    StreamState,
    Transition,
    UtxoInfo,
)
from .spell import Spell, attach_spell_states, build_claim_spell, build_create_spell, render_spell
from .utils import Utils
from .validator import StreamValidator
from .verifier import TransactionVerifier
from .vesting import claimable

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


@dataclass(frozen=True)
class CreateParams:
    """Operator input for the create flow"""
    genesis_utxo: str
    total_amount: int
    duration: int
    stream_address: str
    beneficiary_address: Optional[str] = None
    funding_utxo: Optional[str] = None
    change_address: Optional[str] = None
    app_bin: str = ''
    app_vk: str = ''


@dataclass(frozen=True)
class FlowReceipt:
    """Outcome of a successful flow"""
    txid: str
    stream_outpoint: Outpoint
    head: StreamHead
    accepted: AcceptedTransition


@dataclass(frozen=True)
class StreamStatus:
    """Vesting position of the stream head at ``now``"""
    now: int
    vested: int
    claimed: int
    claimable: int
    remaining: int
    exhausted: bool
    ends_in: int = 0


def parse_outpoint(text: Optional[str], label: str) -> Outpoint:
    if not text:
        raise InputError(f"{label} is required")
    try:
        return Outpoint.parse(text)
    except ValueError as e:
        raise InputError(f"{label}: {e}") from None


class StreamFlows:
    """
    Orchestrates stream transitions against the node and the prover.

    Example:
        >>> flows = StreamFlows.from_settings()
        >>> receipt = flows.claim(10000, funding_utxo="ab..cd:1", change_address="tb1q...")
        >>> print(receipt.stream_outpoint)
    """

    def __init__(self, node: NodeClient, prover: ProverClient, ledger: OutpointLedger,
                 head_store: HeadStore, clock: Clock = system_clock,
                 settings: Optional[Settings] = None):
        self.node = node
        self.prover = prover
        self.ledger = ledger
        self.head_store = head_store
        self.clock = clock
        self.settings = settings or get_settings()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StreamFlows":
        settings = settings or get_settings()
        node = NodeClient(
            settings.rpc_url,
            auth=settings.rpc_auth,
            wallet=settings.rpc_wallet,
            timeout=settings.request_timeout,
        )
        prover = ProverClient(settings.prover_url, timeout=settings.prover_timeout)
        return cls(
            node=node,
            prover=prover,
            ledger=OutpointLedger(settings.ledger_path),
            head_store=HeadStore(settings.head_path),
            settings=settings,
        )

    @property
    def build_dir(self) -> Path:
        return Path(self.settings.build_dir)

    # Flows

    def create(self, params: CreateParams) -> FlowReceipt:
        """
        Create a new stream from a fresh genesis outpoint.

        Args:
            params: Stream amount, duration, addresses and outpoints

        Returns:
            FlowReceipt with the broadcast txid and the saved head

        Raises:
            InputError, OutpointAlreadyUsed, TransitionRejected: before any
                prover call, leaving the ledger untouched
            ProverError, ShapeRejected, BroadcastError: after the outpoints
                were recorded as used
        """
        genesis = parse_outpoint(params.genesis_utxo, "Genesis UTXO")
        funding = parse_outpoint(params.funding_utxo, "Funding UTXO") if params.funding_utxo else genesis
        if params.total_amount < self.settings.min_stream_sats:
            raise InputError(
                f"Amount must be at least {self.settings.min_stream_sats} sats "
                "(dust + fee threshold)"
            )
        if params.duration <= 0:
            raise InputError("Stream duration must be a positive number of seconds")
        if not params.stream_address:
            raise InputError("Stream address is required")
        inputs = self._designated_inputs(genesis, funding)

        for outpoint in inputs:
            self.ledger.check_unused(outpoint)
        self._lookup(genesis, "Genesis UTXO")
        funding_info = self._lookup(funding, "Funding UTXO")
        binaries = self._binaries(params.app_bin, params.app_vk)

        beneficiary_address = params.beneficiary_address or params.stream_address
        beneficiary_dest = self.node.get_script_pubkey(beneficiary_address)
        stream_dest = self.node.get_script_pubkey(params.stream_address)
        identity = CharmStreamCrypto.derive_identity(genesis)
        logger.info("Derived app_id %s from %s", identity.hex(), genesis)

        now = self.clock()
        state = StreamState(
            identity=identity,
            total_amount=params.total_amount,
            claimed_amount=0,
            start_time=now,
            end_time=now + params.duration,
            beneficiary_destination=beneficiary_dest,
        )
        accepted = StreamValidator.validate(Transition(previous_state=None, proposed_state=state, now=now))
        shape = ExpectedShape(accepted=accepted, inputs=inputs, stream_destination=stream_dest)

        spell = build_create_spell(accepted, genesis, params.app_vk, params.stream_address)
        request = ProveRequest(
            spell=spell,
            prev_txs=self._prev_txs(inputs),
            funding_utxo=str(funding),
            funding_utxo_value=funding_info.value_sats,
            change_address=params.change_address or params.stream_address,
            binaries=binaries,
            fee_rate=self.settings.fee_rate,
        )
        head = StreamHead(
            app_bin=params.app_bin,
            app_vk=params.app_vk,
            app_id=identity.hex(),
            stream_address=params.stream_address,
            beneficiary_address=beneficiary_address,
            beneficiary_dest_hex=beneficiary_dest.hex(),
            stream_dest_hex=stream_dest.hex(),
            total_amount=state.total_amount,
            start_time=state.start_time,
            end_time=state.end_time,
        )
        return self._execute('create', shape, spell, request, head)

    def claim(self, claimed_after: int, funding_utxo: str, change_address: str,
              stream_utxo: Optional[str] = None) -> FlowReceipt:
        """
        Claim vested sats, moving claimed_amount to ``claimed_after``.

        Args:
            claimed_after: New cumulative claimed amount in sats
            funding_utxo: Outpoint paying the fee, distinct from the stream
            change_address: Where fee change goes
            stream_utxo: Stream outpoint (default: the saved head's)

        Returns:
            FlowReceipt with the broadcast txid and the advanced head
        """
        head = self.head_store.load()
        stream = parse_outpoint(stream_utxo or head.stream_utxo, "Stream UTXO")
        funding = parse_outpoint(funding_utxo, "Fee funding UTXO")
        if funding == stream:
            raise InputError("Fee UTXO must differ from stream UTXO.")
        if not change_address:
            raise InputError("Change address is required")
        inputs = (stream, funding)

        for outpoint in inputs:
            self.ledger.check_unused(outpoint)
        stream_info = self._lookup(stream, "Stream UTXO")
        logger.info("Stream UTXO value: %d sats", stream_info.value_sats)
        funding_info = self._lookup(funding, "Fee UTXO")
        binaries = self._binaries(head.app_bin, head.app_vk)

        if not head.stream_dest_hex:
            head = replace(head, stream_dest_hex=self.node.get_script_pubkey(head.stream_address).hex())

        now = self.clock()
        if now < head.start_time:
            logger.warning("Current time is before stream start!")
        previous = head.state
        accepted = StreamValidator.validate(Transition(
            previous_state=previous,
            proposed_state=previous.with_claimed(claimed_after),
            now=now,
        ))
        logger.info(
            "claimed_before=%d claimed_after=%d payout_sats=%d remaining_sats=%d",
            previous.claimed_amount, claimed_after, accepted.claimed_delta, accepted.remaining_amount,
        )
        shape = ExpectedShape(accepted=accepted, inputs=inputs, stream_destination=head.stream_destination)

        spell = build_claim_spell(
            accepted, stream, head.app_vk, head.stream_address, head.beneficiary_address
        )
        request = ProveRequest(
            spell=spell,
            prev_txs=self._prev_txs(inputs),
            funding_utxo=str(funding),
            funding_utxo_value=funding_info.value_sats,
            change_address=change_address,
            binaries=binaries,
            fee_rate=self.settings.fee_rate,
        )
        return self._execute('claim', shape, spell, request, head)

    def status(self, now: Optional[int] = None) -> StreamStatus:
        """Vesting position of the saved head"""
        state = self.head_store.load().state
        now = self.clock() if now is None else now
        vested = state.vested_at(now)
        return StreamStatus(
            now=now,
            vested=vested,
            claimed=state.claimed_amount,
            claimable=claimable(
                state.total_amount, state.claimed_amount, state.start_time, state.end_time, now
            ),
            remaining=state.remaining_amount,
            exhausted=state.is_exhausted,
            ends_in=max(0, state.end_time - now),
        )

    # Pipeline

    def _execute(self, flow: str, shape: ExpectedShape, spell: Spell,
                 request: ProveRequest, head: StreamHead) -> FlowReceipt:
        rendered = render_spell(spell)
        diagnostics = Diagnostics(
            flow=flow,
            rendered_request=rendered,
            request_hash=CharmStreamCrypto.request_hash(rendered),
            raw_error='',
        )
        self._write_artifact(f"{flow}.rendered.yaml", rendered)

        # The prover consumes outpoints on submission, even when it fails.
        for outpoint in shape.inputs:
            self.ledger.record(outpoint)

        logger.info("Proving %s spell (this may take a minute)...", flow)
        proved = self._prove(request, diagnostics)
        tx = self._decode(proved, diagnostics)
        self._write_artifact(f"{flow}.hex", tx.raw_hex)
        TransactionVerifier.verify(shape, tx)
        stream_index = TransactionVerifier.find_stream_output(shape, tx).index

        logger.info("Broadcasting %s transaction %s...", flow, Utils.format_txid(tx.txid))
        try:
            txid = self.node.broadcast(tx.raw_hex)
        except BroadcastError as e:
            diagnostics = replace(diagnostics, raw_error=str(e))
            self._write_diagnostics(diagnostics)
            raise BroadcastError(f"Broadcast failed: {e}", diagnostics) from e

        stream_outpoint = Outpoint(txid=txid, vout=stream_index)
        new_head = head.advance(stream_outpoint, shape.accepted.state.claimed_amount)
        self.head_store.save(new_head)
        logger.info("%s succeeded: %s", flow.upper(), Utils.explorer_link(self.settings.explorer_url, txid))
        return FlowReceipt(txid=txid, stream_outpoint=stream_outpoint, head=new_head, accepted=shape.accepted)

    def _prove(self, request: ProveRequest, diagnostics: Diagnostics) -> Proved:
        try:
            result = self.prover.prove(request)
        except ProverError as e:
            diagnostics = replace(diagnostics, raw_error=str(e))
            self._write_diagnostics(diagnostics)
            raise ProverError(f"Proof generation failed: {e}", diagnostics=diagnostics) from e
        if not isinstance(result, Proved):
            diagnostics = replace(diagnostics, raw_error=result.message)
            self._write_diagnostics(diagnostics)
            raise ProverError(
                f"Proof generation failed ({type(result).__name__}): {result.message}",
                result=result,
                diagnostics=diagnostics,
            )
        self._write_artifact(f"{diagnostics.flow}.raw", '\n'.join(result.transactions))
        return result

    def _decode(self, proved: Proved, diagnostics: Diagnostics) -> DecodedTransaction:
        try:
            tx = self.node.decode_transaction(proved.spell_tx_hex)
        except NodeError as e:
            diagnostics = replace(diagnostics, raw_error=str(e))
            self._write_diagnostics(diagnostics)
            raise NodeError(f"Decode failed: {e}", diagnostics) from e
        # States come from the spell the prover embedded, never from our request
        return attach_spell_states(tx, proved.spell)

    # Helpers

    @staticmethod
    def _designated_inputs(stream: Outpoint, funding: Outpoint):
        return (stream,) if funding == stream else (stream, funding)

    def _lookup(self, outpoint: Outpoint, label: str) -> UtxoInfo:
        info = self.node.get_utxo(outpoint)
        if info is None:
            raise InputError(f"{label} {outpoint} not found or already spent!")
        return info

    def _prev_txs(self, outpoints: Iterable[Outpoint]) -> List[str]:
        txids: List[str] = []
        for outpoint in outpoints:
            if outpoint.txid not in txids:
                txids.append(outpoint.txid)
        return [self.node.get_raw_transaction(txid).strip() for txid in txids]

    @staticmethod
    def _binaries(app_bin: str, app_vk: str) -> Dict[str, str]:
        if not app_bin:
            return {}
        path = Path(app_bin)
        if not path.is_file():
            raise InputError(f"App binary not found: {app_bin}")
        return {app_vk: base64.b64encode(path.read_bytes()).decode('ascii')}

    def _write_artifact(self, name: str, text: str) -> None:
        self.build_dir.mkdir(parents=True, exist_ok=True)
        (self.build_dir / name).write_text(text, encoding='utf-8')

    def _write_diagnostics(self, diagnostics: Diagnostics) -> None:
        logger.error("%s failed: %s", diagnostics.flow, diagnostics.raw_error)
        self._write_artifact(f"{diagnostics.flow}.raw", diagnostics.raw_error)
        self._write_artifact(
            f"{diagnostics.flow}.context.txt",
            f"flow: {diagnostics.flow}\n"
            f"request_sha256: {diagnostics.request_hash}\n"
            f"used_utxos: {self.ledger.path}\n"
            f"error: {diagnostics.raw_error}\n",
        )
