"""
Utility functions for CharmStream
"""

import re
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Union

SATS_PER_BTC = Decimal('1e8')


class Utils:
    """Helper utilities for CharmStream operations"""

    @staticmethod
    def btc_to_sats(btc: Union[str, int, float, Decimal]) -> int:
        """
        Convert a BTC amount to sats.

        Floats are routed through ``str`` so node values like 0.0002
        do not pick up binary rounding error.

        Args:
            btc: Amount in BTC

        Returns:
            Amount in sats

        Example:
            >>> Utils.btc_to_sats("0.0002")
            20000
        """
        if isinstance(btc, float):
            btc = repr(btc)
        sats = (Decimal(btc) * SATS_PER_BTC).quantize(Decimal('1'), rounding=ROUND_HALF_EVEN)
        return int(sats)

    @staticmethod
    def sats_to_btc(sats: int) -> Decimal:
        """
        Convert sats to BTC.

        Args:
            sats: Amount in sats

        Returns:
            Amount in BTC as an exact Decimal
        """
        return (Decimal(sats) / SATS_PER_BTC).quantize(Decimal('0.00000001'))

    @staticmethod
    def is_valid_txid(txid: str) -> bool:
        """
        Validate txid format (64 hex characters).

        Args:
            txid: Transaction id string

        Returns:
            True if valid, False otherwise
        """
        pattern = r'^[0-9a-fA-F]{64}$'
        return bool(re.fullmatch(pattern, txid or ''))

    @staticmethod
    def format_txid(txid: str, length: int = 16) -> str:
        """
        Format txid for display (shortened).

        Args:
            txid: Full txid
            length: Number of characters to show from start

        Returns:
            Shortened txid with ellipsis
        """
        if len(txid) <= length:
            return txid
        return f"{txid[:length]}..."

    @staticmethod
    def explorer_link(base_url: str, txid: str) -> str:
        """Block explorer URL for a transaction"""
        return f"{base_url.rstrip('/')}/tx/{txid}"

    @staticmethod
    def seconds_to_readable(seconds: int) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Readable string (e.g., "2h", "3d")
        """
        if seconds < 60:
            return f"{seconds}s"
        elif seconds < 3600:
            return f"{seconds // 60}m"
        elif seconds < 86400:
            return f"{seconds // 3600}h"
        else:
            return f"{seconds // 86400}d"
