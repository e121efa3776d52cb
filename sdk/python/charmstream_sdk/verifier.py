"""
Transaction-shape verification for prover output
"""

import logging
from collections import Counter
from typing import List

from .exceptions import ShapeRejectReason, ShapeRejected
from .models import DecodedTransaction, ExpectedShape, TxOutput

logger = logging.getLogger(__name__)


class TransactionVerifier:
    """
    Cross-checks a prover-built transaction against an accepted transition.

    The prover is an untrusted external service, so this is the last
    check before anything is broadcast. All amounts are integer sats.
    """

    @staticmethod
    def verify(expected: ExpectedShape, tx: DecodedTransaction) -> None:
        """
        Verify inputs, the continuing stream output and the payout output.

        Args:
            expected: Designated inputs and destinations for the transition
            tx: Decoded transaction returned by the prover

        Raises:
            ShapeRejected: on the first mismatch
        """
        try:
            TransactionVerifier._check_inputs(expected, tx)
            stream_output = TransactionVerifier.find_stream_output(expected, tx)
            if expected.accepted.transition.is_claim and expected.accepted.claimed_delta > 0:
                TransactionVerifier._check_payout_output(expected, tx, stream_output)
        except ShapeRejected as e:
            logger.warning("Transaction %s rejected: %s", tx.txid, e)
            raise
        logger.info("Transaction %s matches the accepted transition", tx.txid)

    @staticmethod
    def _check_inputs(expected: ExpectedShape, tx: DecodedTransaction) -> None:
        seen = Counter(tx.inputs)
        for outpoint in expected.inputs:
            if seen[outpoint] != 1:
                raise ShapeRejected(
                    ShapeRejectReason.MISSING_EXPECTED_INPUT,
                    f"{outpoint} spent {seen[outpoint]} times (expected once)",
                )
        unexpected = [str(o) for o in tx.inputs if o not in expected.inputs]
        if unexpected:
            raise ShapeRejected(
                ShapeRejectReason.MISSING_EXPECTED_INPUT,
                f"unexpected inputs: {', '.join(unexpected)}",
            )

    @staticmethod
    def find_stream_output(expected: ExpectedShape, tx: DecodedTransaction) -> TxOutput:
        """
        Locate the output continuing the stream.

        Raises:
            ShapeRejected: if it is missing or locks the wrong amount
        """
        state = expected.accepted.state
        candidates = [
            out for out in tx.outputs
            if out.script_pubkey == expected.stream_destination and out.state is not None
        ]
        matching = [out for out in candidates if out.state == state]
        if not matching:
            raise ShapeRejected(
                ShapeRejectReason.MISSING_STREAM_OUTPUT,
                "no output to the stream destination carries the proposed state",
            )
        output = matching[0]
        if output.value_sats != expected.stream_amount:
            raise ShapeRejected(
                ShapeRejectReason.AMOUNT_MISMATCH,
                f"stream output {output.index} locks {output.value_sats} sats, "
                f"expected {expected.stream_amount}",
            )
        return output

    @staticmethod
    def _check_payout_output(expected: ExpectedShape, tx: DecodedTransaction,
                             stream_output: TxOutput) -> None:
        delta = expected.accepted.claimed_delta
        beneficiary = expected.accepted.state.beneficiary_destination
        payouts: List[TxOutput] = [
            out for out in tx.outputs
            if out.index != stream_output.index and out.script_pubkey == beneficiary
        ]
        if not payouts:
            raise ShapeRejected(
                ShapeRejectReason.MISSING_PAYOUT_OUTPUT,
                "no output pays the beneficiary",
            )
        if not any(out.value_sats == delta for out in payouts):
            paid = ', '.join(str(out.value_sats) for out in payouts)
            raise ShapeRejected(
                ShapeRejectReason.AMOUNT_MISMATCH,
                f"beneficiary outputs pay {paid} sats, expected {delta}",
            )


def verify(expected: ExpectedShape, tx: DecodedTransaction) -> None:
    """Shortcut for :meth:`TransactionVerifier.verify`"""
    TransactionVerifier.verify(expected, tx)
