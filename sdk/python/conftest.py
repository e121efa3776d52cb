from dataclasses import replace

import pytest

from charmstream_sdk.models import Outpoint, StreamState

STREAM_TXID = "aa" * 32
FUNDING_TXID = "bb" * 32
STREAM_SPK = bytes.fromhex("5120" + "11" * 32)
BENEFICIARY_SPK = bytes.fromhex("0014" + "22" * 20)


@pytest.fixture
def genesis_state() -> StreamState:
    return StreamState(
        identity=bytes(range(32)),
        total_amount=20000,
        claimed_amount=0,
        start_time=0,
        end_time=3600,
        beneficiary_destination=BENEFICIARY_SPK,
    )


@pytest.fixture
def make_state(genesis_state):
    def factory(**overrides) -> StreamState:
        return replace(genesis_state, **overrides)
    return factory


@pytest.fixture
def stream_outpoint() -> Outpoint:
    return Outpoint(txid=STREAM_TXID, vout=0)


@pytest.fixture
def funding_outpoint() -> Outpoint:
    return Outpoint(txid=FUNDING_TXID, vout=1)
