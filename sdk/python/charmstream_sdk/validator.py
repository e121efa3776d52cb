"""
Stream state-transition validation
"""

import logging

from .exceptions import RejectReason, TransitionRejected
from .models import AcceptedTransition, StreamState, Transition

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = (
    'identity',
    'total_amount',
    'start_time',
    'end_time',
    'beneficiary_destination',
)


class StreamValidator:
    """
    Enforces the vesting policy over successive stream snapshots.

    Only state arithmetic is checked here; whether the prover's
    transaction matches is the verifier's job.

    Example:
        >>> accepted = StreamValidator.validate(transition)
        >>> print(accepted.claimed_delta, accepted.remaining_amount)
    """

    @staticmethod
    def validate(transition: Transition) -> AcceptedTransition:
        """
        Validate a Create or Claim transition.

        Args:
            transition: Previous (None for Create) and proposed state at ``now``

        Returns:
            AcceptedTransition with claimed_delta and remaining_amount

        Raises:
            TransitionRejected: on the first failed check
        """
        proposed = transition.proposed_state
        try:
            if transition.previous_state is None:
                StreamValidator._check_create(proposed)
            else:
                StreamValidator._check_claim(transition.previous_state, proposed, transition.now)
        except TransitionRejected as e:
            logger.warning("Transition rejected: %s", e)
            raise

        accepted = AcceptedTransition(
            transition=transition,
            claimed_delta=transition.claimed_delta,
            remaining_amount=proposed.total_amount - proposed.claimed_amount,
        )
        logger.debug(
            "Transition accepted: claimed=%d delta=%d remaining=%d",
            proposed.claimed_amount, accepted.claimed_delta, accepted.remaining_amount,
        )
        return accepted

    @staticmethod
    def _check_create(proposed: StreamState) -> None:
        if proposed.total_amount <= 0:
            raise TransitionRejected(
                RejectReason.INVALID_CREATE_PARAMETERS, "total_amount must be > 0"
            )
        if proposed.end_time <= proposed.start_time:
            raise TransitionRejected(
                RejectReason.INVALID_CREATE_PARAMETERS, "start_time must be < end_time"
            )
        if proposed.claimed_amount != 0:
            raise TransitionRejected(
                RejectReason.INVALID_CREATE_PARAMETERS, "claimed_amount must be 0 at create"
            )

    @staticmethod
    def _check_claim(previous: StreamState, proposed: StreamState, now: int) -> None:
        if not 0 <= proposed.claimed_amount <= proposed.total_amount:
            raise TransitionRejected(
                RejectReason.OVERCLAIM,
                f"claimed_amount {proposed.claimed_amount} outside [0, {proposed.total_amount}]",
            )

        if proposed.claimed_amount < previous.claimed_amount:
            raise TransitionRejected(
                RejectReason.NON_MONOTONIC_CLAIM,
                f"claimed_amount cannot decrease ({previous.claimed_amount} -> "
                f"{proposed.claimed_amount})",
            )

        for name in IMMUTABLE_FIELDS:
            if getattr(proposed, name) != getattr(previous, name):
                raise TransitionRejected(
                    RejectReason.IMMUTABLE_FIELD_CHANGED, f"{name} cannot change"
                )

        vested = previous.vested_at(now)
        if proposed.claimed_amount > vested:
            raise TransitionRejected(
                RejectReason.EXCEEDS_VESTED,
                f"claimed_amount {proposed.claimed_amount} exceeds vested {vested} at now={now}",
            )


def validate(transition: Transition) -> AcceptedTransition:
    """Shortcut for :meth:`StreamValidator.validate`"""
    return StreamValidator.validate(transition)
