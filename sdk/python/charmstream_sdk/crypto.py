"""
Hashing utilities for CharmStream
"""

import hashlib

from .models import Outpoint


class CharmStreamCrypto:
    """
    Identity and request digests.

    Uses SHA-256 throughout.
    """

    @staticmethod
    def derive_identity(genesis: Outpoint) -> bytes:
        """
        Derive the stream identity (app id) from its genesis outpoint.

        Args:
            genesis: Outpoint spent by the create transaction

        Returns:
            32-byte identity

        Example:
            >>> identity = CharmStreamCrypto.derive_identity(outpoint)
            >>> print(f"app_id: {identity.hex()}")
        """
        return hashlib.sha256(str(genesis).encode('utf-8')).digest()

    @staticmethod
    def request_hash(rendered_request: str) -> str:
        """
        Hex digest of a rendered prove request, kept with diagnostics so
        a failed submission can be matched against the prover's logs.
        """
        return hashlib.sha256(rendered_request.encode('utf-8')).hexdigest()
