"""
Bitcoin node and prover API clients
"""

import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from .exceptions import BroadcastError, NodeError, ProverError
from .models import (
    AuctionTimeout,
    DecodedTransaction,
    DuplicateInput,
    Outpoint,
    Proved,
    ProveResult,
    TxOutput,
    Unexecutable,
    UtxoInfo,
)
from .utils import Utils

logger = logging.getLogger(__name__)


class NodeClient:
    """
    Bitcoin Core JSON-RPC client.

    Example:
        >>> node = NodeClient("http://127.0.0.1:48332", auth=("user", "pass"))
        >>> utxo = node.get_utxo(Outpoint.parse("ab..cd:0"))
        >>> print(f"Value: {utxo.value_sats} sats")
    """

    def __init__(self, rpc_url: str = "http://127.0.0.1:48332", auth=None,
                 wallet: Optional[str] = None, timeout: int = 30):
        """
        Initialize node client.

        Args:
            rpc_url: RPC server URL (default: testnet4 port)
            auth: (user, password) tuple or None for cookie-less nodes
            wallet: Wallet name for wallet-scoped calls
            timeout: Request timeout in seconds (default: 30)
        """
        self.rpc_url = rpc_url.rstrip('/')
        if wallet:
            self.rpc_url = f"{self.rpc_url}/wallet/{wallet}"
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
        })
        if auth:
            self.session.auth = tuple(auth)

    def _call(self, method: str, *params: Any) -> Any:
        """Make a JSON-RPC call, returning ``result``"""
        logger.debug("RPC %s %s", method, params)
        try:
            response = self.session.post(
                self.rpc_url,
                json={'jsonrpc': '1.0', 'id': 'charmstream', 'method': method, 'params': list(params)},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise NodeError(f"{method} failed: {e}") from e
        try:
            # bitcoind reports RPC errors with a JSON body and HTTP 500
            data = response.json(parse_float=Decimal)
        except ValueError:
            raise NodeError(f"{method} failed: HTTP {response.status_code}: {response.text}") from None
        if data.get('error'):
            error = data['error']
            raise NodeError(f"{method} failed: {error.get('message', error)}")
        return data.get('result')

    # UTXO lookup

    def get_utxo(self, outpoint: Outpoint) -> Optional[UtxoInfo]:
        """
        Look up an unspent output.

        Args:
            outpoint: Output to look up

        Returns:
            UtxoInfo, or None if it does not exist or is already spent
        """
        data = self._call('gettxout', outpoint.txid, outpoint.vout)
        if not data:
            return None
        return UtxoInfo(
            outpoint=outpoint,
            value_sats=Utils.btc_to_sats(data['value']),
            confirmations=int(data.get('confirmations', 0)),
            script_pubkey=bytes.fromhex(data.get('scriptPubKey', {}).get('hex', '')),
        )

    def get_raw_transaction(self, txid: str) -> str:
        """Raw transaction hex for a txid"""
        return self._call('getrawtransaction', txid)

    def get_script_pubkey(self, address: str) -> bytes:
        """
        Resolve an address to its locking script.

        Raises:
            NodeError: if the node cannot resolve the address
        """
        data = self._call('getaddressinfo', address)
        spk = (data or {}).get('scriptPubKey')
        if not spk:
            raise NodeError(f"Could not resolve scriptPubKey for {address}")
        return bytes.fromhex(spk)

    # Transaction decoding and broadcast

    def decode_transaction(self, raw_hex: str) -> DecodedTransaction:
        """
        Decode a raw transaction.

        Args:
            raw_hex: Transaction hex

        Returns:
            DecodedTransaction with integer-sat outputs
        """
        data = self._call('decoderawtransaction', raw_hex)
        inputs = tuple(
            Outpoint(txid=vin['txid'], vout=int(vin['vout']))
            for vin in data.get('vin', [])
            if 'txid' in vin
        )
        outputs = tuple(
            TxOutput(
                index=int(vout['n']),
                value_sats=Utils.btc_to_sats(vout['value']),
                script_pubkey=bytes.fromhex(vout['scriptPubKey']['hex']),
            )
            for vout in data.get('vout', [])
        )
        return DecodedTransaction(txid=data['txid'], inputs=inputs, outputs=outputs, raw_hex=raw_hex)

    def broadcast(self, raw_hex: str) -> str:
        """
        Send a signed transaction to the network.

        Returns:
            txid of the broadcast transaction

        Raises:
            BroadcastError: if the node rejects it
        """
        try:
            return self._call('sendrawtransaction', raw_hex)
        except NodeError as e:
            raise BroadcastError(str(e)) from e

    def close(self):
        """Close the session"""
        self.session.close()

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, *args):
        """Context manager exit"""
        self.close()


@dataclass
class ProveRequest:
    """Prove request payload"""
    spell: Dict[str, Any]
    prev_txs: List[str]
    funding_utxo: str
    funding_utxo_value: int
    change_address: str
    binaries: Dict[str, str] = field(default_factory=dict)
    fee_rate: float = 2.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ProverClient:
    """
    Client for the external spell prover.

    Example:
        >>> prover = ProverClient("https://v4.charms.dev")
        >>> result = prover.prove(request)
        >>> if isinstance(result, Proved):
        ...     print(result.spell_tx_hex)
    """

    def __init__(self, base_url: str = "https://v4.charms.dev", timeout: int = 600):
        """
        Initialize prover client.

        Args:
            base_url: Prover URL
            timeout: Request timeout in seconds (proving may take minutes)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
        })

    def _post(self, endpoint: str, data: Dict[str, Any]) -> requests.Response:
        """Make POST request"""
        try:
            return self.session.post(
                f"{self.base_url}{endpoint}",
                json=data,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ProverError(f"prover request failed: {e}") from e

    def prove(self, request: ProveRequest) -> ProveResult:
        """
        Submit a spell for proving.

        Args:
            request: Spell and funding details

        Returns:
            Proved with the transaction hex list, or the typed failure

        Raises:
            ProverError: on transport failure or an unreadable response
        """
        response = self._post('/spells/prove', request.to_dict())
        if not response.ok:
            return classify_failure(response.text or f"HTTP {response.status_code}")
        try:
            data = response.json()
            transactions = [entry['bitcoin'] if isinstance(entry, dict) else entry for entry in data]
            # the spell tx entry may echo the normalized spell it embeds
            spell = data[-1].get('spell') if transactions and isinstance(data[-1], dict) else None
        except (ValueError, KeyError, TypeError) as e:
            raise ProverError(f"unexpected prover response: {response.text[:200]}") from e
        if not transactions:
            raise ProverError("prover returned no transactions")
        return Proved(transactions=transactions, spell=spell if isinstance(spell, dict) else None)

    def close(self):
        """Close the session"""
        self.session.close()

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, *args):
        """Context manager exit"""
        self.close()


def classify_failure(message: str) -> ProveResult:
    """Map a prover error message to its failure variant"""
    text = message.lower()
    if 'duplicate funding' in text:
        return DuplicateInput(message)
    if 'auction' in text and ('timeout' in text or 'timed out' in text):
        return AuctionTimeout(message)
    return Unexecutable(message)
