import pytest

from charmstream_sdk.exceptions import ShapeRejectReason, ShapeRejected
from charmstream_sdk.models import DecodedTransaction, ExpectedShape, Outpoint, Transition, TxOutput
from charmstream_sdk.validator import validate
from charmstream_sdk.verifier import TransactionVerifier, verify

from conftest import BENEFICIARY_SPK, STREAM_SPK

CHANGE_SPK = bytes.fromhex("0014" + "44" * 20)


@pytest.fixture
def claim_shape(genesis_state, stream_outpoint, funding_outpoint) -> ExpectedShape:
    accepted = validate(Transition(
        previous_state=genesis_state,
        proposed_state=genesis_state.with_claimed(10000),
        now=1800,
    ))
    return ExpectedShape(
        accepted=accepted,
        inputs=(stream_outpoint, funding_outpoint),
        stream_destination=STREAM_SPK,
    )


@pytest.fixture
def claim_tx(claim_shape, stream_outpoint, funding_outpoint) -> DecodedTransaction:
    return DecodedTransaction(
        txid="cc" * 32,
        inputs=(stream_outpoint, funding_outpoint),
        outputs=(
            TxOutput(index=0, value_sats=10000, script_pubkey=STREAM_SPK, state=claim_shape.accepted.state),
            TxOutput(index=1, value_sats=10000, script_pubkey=BENEFICIARY_SPK),
            TxOutput(index=2, value_sats=4321, script_pubkey=CHANGE_SPK),
        ),
    )


def with_outputs(tx, *outputs):
    return DecodedTransaction(txid=tx.txid, inputs=tx.inputs, outputs=outputs)


def with_inputs(tx, *inputs):
    return DecodedTransaction(txid=tx.txid, inputs=inputs, outputs=tx.outputs)


def reason_for(shape, tx):
    with pytest.raises(ShapeRejected) as exc:
        verify(shape, tx)
    return exc.value.reason


def test_matching_claim_transaction_passes(claim_shape, claim_tx) -> None:
    verify(claim_shape, claim_tx)
    assert TransactionVerifier.find_stream_output(claim_shape, claim_tx).index == 0


def test_missing_stream_input(claim_shape, claim_tx, funding_outpoint) -> None:
    tx = with_inputs(claim_tx, funding_outpoint)
    assert reason_for(claim_shape, tx) is ShapeRejectReason.MISSING_EXPECTED_INPUT


def test_duplicate_input(claim_shape, claim_tx, stream_outpoint, funding_outpoint) -> None:
    tx = with_inputs(claim_tx, stream_outpoint, funding_outpoint, stream_outpoint)
    assert reason_for(claim_shape, tx) is ShapeRejectReason.MISSING_EXPECTED_INPUT


def test_substituted_input(claim_shape, claim_tx, stream_outpoint, funding_outpoint) -> None:
    tx = with_inputs(claim_tx, stream_outpoint, funding_outpoint, Outpoint(txid="dd" * 32, vout=0))
    assert reason_for(claim_shape, tx) is ShapeRejectReason.MISSING_EXPECTED_INPUT


def test_missing_stream_output(claim_shape, claim_tx) -> None:
    tx = with_outputs(claim_tx, *claim_tx.outputs[1:])
    assert reason_for(claim_shape, tx) is ShapeRejectReason.MISSING_STREAM_OUTPUT


def test_stream_output_with_wrong_state(claim_shape, claim_tx) -> None:
    stale = claim_tx.outputs[0].state.with_claimed(9000)
    tx = with_outputs(
        claim_tx,
        TxOutput(index=0, value_sats=10000, script_pubkey=STREAM_SPK, state=stale),
        *claim_tx.outputs[1:],
    )
    assert reason_for(claim_shape, tx) is ShapeRejectReason.MISSING_STREAM_OUTPUT


def test_stream_output_amount_mismatch(claim_shape, claim_tx) -> None:
    tx = with_outputs(
        claim_tx,
        TxOutput(index=0, value_sats=9999, script_pubkey=STREAM_SPK, state=claim_tx.outputs[0].state),
        *claim_tx.outputs[1:],
    )
    assert reason_for(claim_shape, tx) is ShapeRejectReason.AMOUNT_MISMATCH


def test_missing_payout_output(claim_shape, claim_tx) -> None:
    tx = with_outputs(claim_tx, claim_tx.outputs[0], claim_tx.outputs[2])
    assert reason_for(claim_shape, tx) is ShapeRejectReason.MISSING_PAYOUT_OUTPUT


def test_payout_amount_mismatch(claim_shape, claim_tx) -> None:
    tx = with_outputs(
        claim_tx,
        claim_tx.outputs[0],
        TxOutput(index=1, value_sats=9000, script_pubkey=BENEFICIARY_SPK),
        claim_tx.outputs[2],
    )
    assert reason_for(claim_shape, tx) is ShapeRejectReason.AMOUNT_MISMATCH


def test_payout_may_share_stream_script(make_state, stream_outpoint, funding_outpoint) -> None:
    previous = make_state(beneficiary_destination=STREAM_SPK)
    accepted = validate(Transition(previous_state=previous, proposed_state=previous.with_claimed(5000), now=1800))
    shape = ExpectedShape(accepted=accepted, inputs=(stream_outpoint, funding_outpoint), stream_destination=STREAM_SPK)
    tx = DecodedTransaction(
        txid="cc" * 32,
        inputs=(stream_outpoint, funding_outpoint),
        outputs=(
            TxOutput(index=0, value_sats=15000, script_pubkey=STREAM_SPK, state=accepted.state),
            TxOutput(index=1, value_sats=5000, script_pubkey=STREAM_SPK),
        ),
    )
    verify(shape, tx)

    # the stream output itself does not count as the payout
    with pytest.raises(ShapeRejected) as exc:
        verify(shape, with_outputs(tx, tx.outputs[0]))
    assert exc.value.reason is ShapeRejectReason.MISSING_PAYOUT_OUTPUT


def test_create_expects_total_amount_and_no_payout(genesis_state, stream_outpoint) -> None:
    accepted = validate(Transition(previous_state=None, proposed_state=genesis_state, now=0))
    shape = ExpectedShape(accepted=accepted, inputs=(stream_outpoint,), stream_destination=STREAM_SPK)
    tx = DecodedTransaction(
        txid="cc" * 32,
        inputs=(stream_outpoint,),
        outputs=(TxOutput(index=0, value_sats=20000, script_pubkey=STREAM_SPK, state=genesis_state),),
    )
    verify(shape, tx)

    short = with_outputs(tx, TxOutput(index=0, value_sats=19999, script_pubkey=STREAM_SPK, state=genesis_state))
    assert reason_for(shape, short) is ShapeRejectReason.AMOUNT_MISMATCH
