from decimal import Decimal
from unittest import mock

import pytest
import requests

from charmstream_sdk.client import NodeClient, ProveRequest, ProverClient, classify_failure
from charmstream_sdk.exceptions import BroadcastError, NodeError, ProverError
from charmstream_sdk.models import AuctionTimeout, DuplicateInput, Outpoint, Proved, Unexecutable


def rpc_response(result=None, error=None, status=200):
    response = mock.Mock(status_code=status, ok=status < 400, text="")
    response.json.return_value = {"result": result, "error": error, "id": "charmstream"}
    return response


@pytest.fixture
def node():
    client = NodeClient("http://node:48332/", auth=("user", "pass"), wallet="charmstream")
    client.session = mock.Mock()
    return client


def test_wallet_url_and_call_payload(node, stream_outpoint) -> None:
    node.session.post.return_value = rpc_response(None)
    node.get_utxo(stream_outpoint)

    url = node.session.post.call_args.args[0]
    payload = node.session.post.call_args.kwargs["json"]
    assert url == "http://node:48332/wallet/charmstream"
    assert payload["method"] == "gettxout"
    assert payload["params"] == [stream_outpoint.txid, 0]


def test_get_utxo_converts_btc_to_sats(node, stream_outpoint) -> None:
    node.session.post.return_value = rpc_response({
        "value": Decimal("0.00020000"),
        "confirmations": 3,
        "scriptPubKey": {"hex": "0014" + "22" * 20},
    })
    utxo = node.get_utxo(stream_outpoint)
    assert utxo.value_sats == 20000
    assert utxo.confirmations == 3


def test_get_utxo_returns_none_when_spent(node, stream_outpoint) -> None:
    node.session.post.return_value = rpc_response(None)
    assert node.get_utxo(stream_outpoint) is None


def test_decode_transaction(node) -> None:
    node.session.post.return_value = rpc_response({
        "txid": "cc" * 32,
        "vin": [{"txid": "aa" * 32, "vout": 0}, {"txid": "bb" * 32, "vout": 1}],
        "vout": [
            {"n": 0, "value": Decimal("0.0001"), "scriptPubKey": {"hex": "51"}},
            {"n": 1, "value": Decimal("0.00009999"), "scriptPubKey": {"hex": "52"}},
        ],
    })
    tx = node.decode_transaction("deadbeef")
    assert tx.inputs == (Outpoint("aa" * 32, 0), Outpoint("bb" * 32, 1))
    assert [o.value_sats for o in tx.outputs] == [10000, 9999]
    assert tx.raw_hex == "deadbeef"


def test_rpc_error_raises(node) -> None:
    node.session.post.return_value = rpc_response(error={"code": -5, "message": "Invalid address"}, status=500)
    with pytest.raises(NodeError, match="Invalid address"):
        node.get_script_pubkey("tb1qbad")


def test_broadcast_failure_is_broadcast_error(node) -> None:
    node.session.post.return_value = rpc_response(error={"code": -26, "message": "min relay fee not met"})
    with pytest.raises(BroadcastError):
        node.broadcast("deadbeef")


def test_transport_failure_is_node_error(node) -> None:
    node.session.post.side_effect = requests.ConnectionError("refused")
    with pytest.raises(NodeError):
        node.get_raw_transaction("aa" * 32)


@pytest.fixture
def prover():
    client = ProverClient("https://prover.example/")
    client.session = mock.Mock()
    return client


@pytest.fixture
def request_payload() -> ProveRequest:
    return ProveRequest(
        spell={"version": 4},
        prev_txs=["00"],
        funding_utxo="bb" * 32 + ":1",
        funding_utxo_value=50000,
        change_address="tb1qchange",
    )


def test_prove_success(prover, request_payload) -> None:
    response = mock.Mock(ok=True, status_code=200)
    response.json.return_value = [{"bitcoin": "commit"}, {"bitcoin": "spell"}]
    prover.session.post.return_value = response

    result = prover.prove(request_payload)
    assert isinstance(result, Proved)
    assert result.spell_tx_hex == "spell"
    assert result.spell is None
    assert prover.session.post.call_args.args[0] == "https://prover.example/spells/prove"
    assert prover.session.post.call_args.kwargs["json"]["funding_utxo_value"] == 50000


def test_prove_returns_embedded_spell(prover, request_payload) -> None:
    response = mock.Mock(ok=True, status_code=200)
    response.json.return_value = [{"bitcoin": "commit"}, {"bitcoin": "spell", "spell": {"version": 4, "outs": []}}]
    prover.session.post.return_value = response

    result = prover.prove(request_payload)
    assert result.spell == {"version": 4, "outs": []}


def test_prove_failure_is_typed(prover, request_payload) -> None:
    prover.session.post.return_value = mock.Mock(ok=False, status_code=400, text="duplicate funding UTXO")
    assert isinstance(prover.prove(request_payload), DuplicateInput)


def test_prove_transport_failure(prover, request_payload) -> None:
    prover.session.post.side_effect = requests.Timeout("slow")
    with pytest.raises(ProverError):
        prover.prove(request_payload)


@pytest.mark.parametrize("message,variant", [
    ("error: duplicate funding UTXO spend", DuplicateInput),
    ("proof auction timeout after 120s", AuctionTimeout),
    ("Auction timed out", AuctionTimeout),
    ("app contract not satisfied", Unexecutable),
])
def test_classify_failure(message, variant) -> None:
    result = classify_failure(message)
    assert isinstance(result, variant)
    assert result.message == message
