"""
Seat Allocation.

Pure functions used by the booking engine:
1. Greedy first-fit allocation in queue order (overnight first, then position)
2. Apportioning a caller-supplied total across vehicles by seats
3. Verification code generation
"""

import secrets
import string
from dataclasses import dataclass
from typing import Iterable, List, Sequence

VERIFICATION_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class SeatCandidate:
    queue_id: int
    available_seats: int
    queue_position: int
    base_price: float
    overnight: bool = False


@dataclass(frozen=True)
class SeatAllocation:
    queue_id: int
    seats_to_book: int


def allocation_order(candidates: Iterable[SeatCandidate]) -> List[SeatCandidate]:
    """Overnight vehicles ahead of regular ones, each group by position."""
    return sorted(candidates, key=lambda c: (0 if c.overnight else 1, c.queue_position, c.queue_id))


def allocate_seats(candidates: Sequence[SeatCandidate], seats_requested: int) -> List[SeatAllocation]:
    """
    Split a request across vehicles, greedy first-fit in queue order.

    All or nothing: if the candidates together hold fewer seats than
    requested, no allocation is returned.

    Args:
        candidates: Vehicles of one destination, any order
        seats_requested: Seats to place, must be positive

    Returns:
        Allocations in queue order, or an empty list if seats are short
    """
    if seats_requested <= 0:
        raise ValueError("seats_requested must be positive")

    total_available = sum(max(c.available_seats, 0) for c in candidates)
    if total_available < seats_requested:
        return []

    allocations = []
    remaining = seats_requested
    for candidate in allocation_order(candidates):
        if remaining == 0:
            break
        if candidate.available_seats <= 0:
            continue
        take = min(remaining, candidate.available_seats)
        allocations.append(SeatAllocation(queue_id=candidate.queue_id, seats_to_book=take))
        remaining -= take

    return allocations


def apportion_amount(total_amount: float, seats: Sequence[int]) -> List[float]:
    """
    Split a total across bookings in proportion to their seats.

    Shares are rounded to 3 decimals; the last share takes the rounding
    remainder so the parts always add up to the total.
    """
    if not seats:
        return []
    seats_total = sum(seats)
    if seats_total <= 0:
        raise ValueError("seats must add up to a positive number")

    shares = [round(total_amount * s / seats_total, 3) for s in seats[:-1]]
    shares.append(round(total_amount - sum(shares), 3))
    return shares


def generate_verification_code(length: int = 6) -> str:
    return "".join(secrets.choice(VERIFICATION_ALPHABET) for _ in range(length))


def distinct_verification_codes(count: int, length: int = 6) -> List[str]:
    """`count` codes, pairwise distinct."""
    codes: List[str] = []
    while len(codes) < count:
        code = generate_verification_code(length)
        if code not in codes:
            codes.append(code)
    return codes
