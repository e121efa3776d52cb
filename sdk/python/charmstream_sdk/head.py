"""
Stream head snapshot and its persisted environment file
"""

import logging
import os
import shlex
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional, Union

from .exceptions import InputError
from .models import Outpoint, StreamState

logger = logging.getLogger(__name__)

HEAD_FILENAME = 'env.sh'

# attribute -> variable name in env.sh
ENV_KEYS = {
    'app_bin': 'app_bin',
    'app_vk': 'app_vk',
    'app_id': 'app_id',
    'stream_address': 'addr_0',
    'beneficiary_address': 'beneficiary_addr',
    'beneficiary_dest_hex': 'beneficiary_dest_hex',
    'stream_dest_hex': 'stream_dest_hex',
    'total_amount': 'total_amount',
    'start_time': 'start_time',
    'end_time': 'end_time',
    'stream_utxo': 'stream_utxo_0',
    'claimed_amount': 'claimed_amount',
}
INT_FIELDS = ('total_amount', 'start_time', 'end_time', 'claimed_amount')


@dataclass(frozen=True)
class StreamHead:
    """
    Live head of a stream: its current outpoint, state and the derived
    identifiers the next flow needs. Never mutated; use advance().
    """
    app_bin: str
    app_vk: str
    app_id: str
    stream_address: str
    beneficiary_address: str
    beneficiary_dest_hex: str
    stream_dest_hex: str
    total_amount: int
    start_time: int
    end_time: int
    stream_utxo: str = ''
    claimed_amount: int = 0

    @property
    def state(self) -> StreamState:
        return StreamState(
            identity=bytes.fromhex(self.app_id),
            total_amount=self.total_amount,
            claimed_amount=self.claimed_amount,
            start_time=self.start_time,
            end_time=self.end_time,
            beneficiary_destination=bytes.fromhex(self.beneficiary_dest_hex),
        )

    @property
    def stream_outpoint(self) -> Optional[Outpoint]:
        return Outpoint.parse(self.stream_utxo) if self.stream_utxo else None

    @property
    def stream_destination(self) -> bytes:
        return bytes.fromhex(self.stream_dest_hex)

    def advance(self, stream_outpoint: Outpoint, claimed_amount: int) -> "StreamHead":
        """Return the head after a transition landed at ``stream_outpoint``"""
        return replace(self, stream_utxo=str(stream_outpoint), claimed_amount=claimed_amount)

    def to_env(self) -> Dict[str, str]:
        return {env: str(getattr(self, attr)) for attr, env in ENV_KEYS.items()}

    @classmethod
    def from_env(cls, env: Dict[str, str]) -> "StreamHead":
        """
        Build a head from env.sh variables.

        Raises:
            InputError: listing every missing required variable, or a
                non-integer amount/timestamp
        """
        # app_bin and app_vk may be empty when the prover already holds the app
        optional = ('app_bin', 'app_vk', 'stream_utxo', 'claimed_amount', 'stream_dest_hex')
        missing = [
            env_key for attr, env_key in ENV_KEYS.items()
            if attr not in optional and not env.get(env_key)
        ]
        if missing:
            raise InputError(
                "Missing required environment variables from create flow: "
                + ", ".join(missing)
            )
        values = {attr: env.get(env_key, '') for attr, env_key in ENV_KEYS.items()}
        values['claimed_amount'] = values['claimed_amount'] or '0'
        try:
            for attr in INT_FIELDS:
                values[attr] = int(values[attr])
            for attr in ('app_id', 'beneficiary_dest_hex', 'stream_dest_hex'):
                bytes.fromhex(values[attr])
        except ValueError as e:
            raise InputError(f"Malformed stream environment: {e}") from None
        return cls(**values)


def parse_env(text: str) -> Dict[str, str]:
    """Parse ``export key="value"`` lines"""
    env = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        tokens = shlex.split(line)
        if tokens and tokens[0] == 'export':
            tokens = tokens[1:]
        for token in tokens:
            key, sep, value = token.partition('=')
            if sep:
                env[key] = value
    return env


def render_env(head: StreamHead) -> str:
    return ''.join(
        f"export {key}={shlex.quote(value)}\n" for key, value in head.to_env().items()
    )


class HeadStore:
    """Persists the stream head between flow invocations"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> StreamHead:
        """
        Load the current head.

        Raises:
            InputError: if no head was saved or it is incomplete
        """
        if not self.exists():
            raise InputError(f"{self.path} not found. Please run the create flow first.")
        logger.info("Loading %s...", self.path)
        return StreamHead.from_env(parse_env(self.path.read_text(encoding='utf-8')))

    def save(self, head: StreamHead) -> None:
        """Atomically replace the saved head"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + '.tmp')
        tmp.write_text(render_env(head), encoding='utf-8')
        os.replace(tmp, self.path)
        logger.info("Saved updated environment to %s", self.path)
