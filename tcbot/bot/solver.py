"""Waiting tile solver used to answer the server's login challenge.

The challenge is a hand of single-suit tiles written as digits (``"1112223334"``).
The answer lists every rank that, added to the hand, lets it be split into
groups (runs of three consecutive ranks or triplets) plus exactly one pair.
"""

from __future__ import annotations

RANKS = range(1, 10)
MAX_COPIES = 4


def parse_hand(hand: str) -> list[int]:
    """Count tiles per rank. Index 0 is unused so ranks index directly."""
    counts = [0] * 10
    for char in hand:
        if char.isdigit() and char != "0":
            counts[int(char)] += 1
    return counts


def _decompose(counts: list[int], groups_left: int) -> bool:
    """Try to consume ``groups_left`` groups and leave exactly one pair."""
    if groups_left == 0:
        return sum(counts) == 2 and 2 in counts

    for start in range(1, 8):
        if counts[start] and counts[start + 1] and counts[start + 2]:
            counts[start] -= 1
            counts[start + 1] -= 1
            counts[start + 2] -= 1
            found = _decompose(counts, groups_left - 1)
            counts[start] += 1
            counts[start + 1] += 1
            counts[start + 2] += 1
            if found:
                return True

    for rank in RANKS:
        if counts[rank] >= 3:
            counts[rank] -= 3
            found = _decompose(counts, groups_left - 1)
            counts[rank] += 3
            if found:
                return True

    return False


def is_complete(counts: list[int]) -> bool:
    """Whether a hand splits into groups plus one pair."""
    total = sum(counts)
    if total < 2 or total % 3 != 2:
        return False
    return _decompose(list(counts), (total - 2) // 3)


def solve_waiting_tiles(hand: str) -> list[int]:
    """Return the ascending ranks that complete ``hand``.

    An empty list means no tile completes it, which callers answer with an
    empty string rather than treating as an error.
    """
    counts = parse_hand(hand)
    if (sum(counts) + 1) % 3 != 2:
        return []

    waits = []
    for rank in RANKS:
        if counts[rank] >= MAX_COPIES:
            continue
        counts[rank] += 1
        if is_complete(counts):
            waits.append(rank)
        counts[rank] -= 1
    return waits


def format_answer(waits: list[int]) -> str:
    """Encode solved ranks the way the login packet carries them."""
    return "".join(str(rank) for rank in waits)
