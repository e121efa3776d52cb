"""
Outpoint reservation ledger
"""

import logging
import os
from pathlib import Path
from typing import Callable, List, Set, Union

from .exceptions import OutpointAlreadyUsed
from .models import Outpoint

logger = logging.getLogger(__name__)

KeyFunction = Callable[[Outpoint], str]

LEDGER_FILENAME = 'used_utxos.txt'


def outpoint_key(outpoint: Outpoint) -> str:
    """Default key: the ``txid:vout`` text"""
    return str(outpoint)


def scoped_key(scope: str) -> KeyFunction:
    """
    Key outpoints under a scope such as a session id or a rendered-request
    hash, for provers that reserve per request rather than per outpoint.
    """
    def key(outpoint: Outpoint) -> str:
        return f"{scope}/{outpoint}"
    return key


class OutpointLedger:
    """
    Append-only record of outpoints already submitted to the prover.

    The prover treats a submission as consuming the outpoint even when
    proving fails, so outpoints are recorded before the result is known
    and are never removed.

    Example:
        >>> ledger = OutpointLedger(".build/used_utxos.txt")
        >>> ledger.check_unused(outpoint)
        >>> ledger.record(outpoint)
    """

    def __init__(self, path: Union[str, Path], key: KeyFunction = outpoint_key):
        """
        Open (creating if needed) the ledger file.

        Args:
            path: Newline-delimited log file
            key: Maps an outpoint to its ledger key
        """
        self.path = Path(path)
        self.key = key
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        self._keys: Set[str] = set(self._read())

    def _read(self) -> List[str]:
        with open(self.path, 'r', encoding='utf-8') as f:
            return [line.strip() for line in f if line.strip()]

    def is_used(self, outpoint: Outpoint) -> bool:
        return self.key(outpoint) in self._keys

    def __contains__(self, outpoint: Outpoint) -> bool:
        return self.is_used(outpoint)

    def __len__(self) -> int:
        return len(self._keys)

    def entries(self) -> List[str]:
        """Recorded keys in submission order"""
        return self._read()

    def check_unused(self, outpoint: Outpoint) -> None:
        """
        Fail fast if the outpoint was already submitted.

        Raises:
            OutpointAlreadyUsed: if the outpoint's key is recorded
        """
        key = self.key(outpoint)
        if key in self._keys:
            logger.warning("Outpoint %s already used", key)
            raise OutpointAlreadyUsed(key)

    def record(self, outpoint: Outpoint) -> None:
        """Record the outpoint as submitted. Recording twice is a no-op."""
        key = self.key(outpoint)
        if key in self._keys:
            return
        line = key + '\n'
        # a hand-edited log may lack the final newline
        if self.path.stat().st_size:
            with open(self.path, 'rb') as f:
                f.seek(-1, os.SEEK_END)
                if f.read(1) != b'\n':
                    line = '\n' + line
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(line)
            f.flush()
            os.fsync(f.fileno())
        self._keys.add(key)
        logger.info("Recorded outpoint %s as used", key)
