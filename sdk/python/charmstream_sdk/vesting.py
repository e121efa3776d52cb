"""
Linear vesting schedule
"""


def vested(total_amount: int, start_time: int, end_time: int, now: int) -> int:
    """
    Amount unlocked at ``now`` under a linear schedule.

    Requires end_time > start_time (checked when the stream is created).
    Python integers are unbounded, so ``total_amount * elapsed`` cannot
    overflow and the result is exact floor division.

    Args:
        total_amount: Total stream amount in sats
        start_time: Unix timestamp when vesting begins
        end_time: Unix timestamp when everything is vested
        now: Unix timestamp to evaluate at

    Returns:
        Vested sats in [0, total_amount]

    Example:
        >>> vested(20000, 0, 3600, 1800)
        10000
    """
    if now <= start_time:
        return 0
    if now >= end_time:
        return total_amount
    return total_amount * (now - start_time) // (end_time - start_time)


def claimable(total_amount: int, claimed_amount: int, start_time: int, end_time: int, now: int) -> int:
    """Vested sats not yet claimed (never negative)"""
    return max(0, vested(total_amount, start_time, end_time, now) - claimed_amount)
