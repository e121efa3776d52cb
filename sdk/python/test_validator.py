import pytest

from charmstream_sdk.exceptions import RejectReason, TransitionRejected
from charmstream_sdk.models import Transition
from charmstream_sdk.validator import StreamValidator, validate


def claim(previous, proposed, now):
    return Transition(previous_state=previous, proposed_state=proposed, now=now)


def test_create_accepted(genesis_state) -> None:
    accepted = validate(Transition(previous_state=None, proposed_state=genesis_state, now=0))
    assert accepted.claimed_delta == 0
    assert accepted.remaining_amount == 20000
    assert accepted.state == genesis_state


@pytest.mark.parametrize("overrides", [
    {"total_amount": 0},
    {"start_time": 3600},
    {"end_time": 0},
    {"claimed_amount": 1},
])
def test_create_rejects_invalid_parameters(make_state, overrides) -> None:
    with pytest.raises(TransitionRejected) as exc:
        validate(Transition(previous_state=None, proposed_state=make_state(**overrides), now=0))
    assert exc.value.reason is RejectReason.INVALID_CREATE_PARAMETERS


def test_claim_up_to_vested_is_accepted(genesis_state) -> None:
    accepted = StreamValidator.validate(claim(genesis_state, genesis_state.with_claimed(10000), 1800))
    assert accepted.claimed_delta == 10000
    assert accepted.remaining_amount == 10000


def test_claim_beyond_vested_is_rejected(genesis_state) -> None:
    with pytest.raises(TransitionRejected) as exc:
        validate(claim(genesis_state, genesis_state.with_claimed(10001), 1800))
    assert exc.value.reason is RejectReason.EXCEEDS_VESTED


def test_claim_above_total_is_overclaim(genesis_state) -> None:
    with pytest.raises(TransitionRejected) as exc:
        validate(claim(genesis_state, genesis_state.with_claimed(20001), 10_000))
    assert exc.value.reason is RejectReason.OVERCLAIM


def test_negative_claim_is_overclaim(genesis_state) -> None:
    with pytest.raises(TransitionRejected) as exc:
        validate(claim(genesis_state, genesis_state.with_claimed(-1), 1800))
    assert exc.value.reason is RejectReason.OVERCLAIM


def test_claim_cannot_decrease(genesis_state) -> None:
    previous = genesis_state.with_claimed(5000)
    with pytest.raises(TransitionRejected) as exc:
        validate(claim(previous, previous.with_claimed(4000), 1800))
    assert exc.value.reason is RejectReason.NON_MONOTONIC_CLAIM


def test_zero_delta_claim_is_accepted(genesis_state) -> None:
    previous = genesis_state.with_claimed(5000)
    accepted = validate(claim(previous, previous, 1800))
    assert accepted.claimed_delta == 0
    assert accepted.remaining_amount == 15000


@pytest.mark.parametrize("field,value", [
    ("identity", b"\xff" * 32),
    ("total_amount", 30000),
    ("start_time", 1),
    ("end_time", 7200),
    ("beneficiary_destination", b"\x00\x14" + b"\x33" * 20),
])
def test_any_immutable_field_change_is_rejected(make_state, genesis_state, field, value) -> None:
    proposed = make_state(claimed_amount=100, **{field: value})
    with pytest.raises(TransitionRejected) as exc:
        validate(claim(genesis_state, proposed, 1800))
    assert exc.value.reason is RejectReason.IMMUTABLE_FIELD_CHANGED


def test_claim_before_start_is_rejected(make_state) -> None:
    previous = make_state(start_time=1000, end_time=2000)
    with pytest.raises(TransitionRejected) as exc:
        validate(claim(previous, previous.with_claimed(1), 500))
    assert exc.value.reason is RejectReason.EXCEEDS_VESTED


def test_claim_chain_keeps_total_balanced(genesis_state) -> None:
    total = genesis_state.total_amount
    state = validate(Transition(previous_state=None, proposed_state=genesis_state, now=0)).state
    for now in (600, 1200, 1800, 3000, 3600, 4000):
        target = state.vested_at(now)
        accepted = validate(claim(state, state.with_claimed(target), now))
        assert accepted.state.claimed_amount + accepted.remaining_amount == total
        assert state.claimed_amount <= accepted.state.claimed_amount <= state.vested_at(now)
        state = accepted.state
    assert state.is_exhausted
