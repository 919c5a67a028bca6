"""
Cryptographically secure code generation for drop access.
"""
import logging
import secrets
from typing import Awaitable, Callable

from codedrop.errors import AllocationExhausted

logger = logging.getLogger(__name__)

MAX_ALLOCATION_ATTEMPTS = 10


def generate_code(length: int = 6) -> str:
    """
    Generate a secure random numeric code of `length` digits.

    Uses the `secrets` module so codes cannot be predicted from earlier ones.
    The first digit is never zero, e.g. 100000-999999 for the default length.

    Returns:
        str: A code like "482913"
    """
    low = 10 ** (length - 1)
    high = 10 ** length - 1
    return str(low + secrets.randbelow(high - low + 1))


class CodeAllocator:
    """
    Picks codes that no live drop currently holds.

    Allocation only checks, it does not reserve: the store must still insert
    with insert-if-absent semantics.
    """

    def __init__(
        self,
        is_taken: Callable[[str], Awaitable[bool]],
        length: int = 6,
        max_attempts: int = MAX_ALLOCATION_ATTEMPTS,
    ):
        self.is_taken = is_taken
        self.length = length
        self.max_attempts = max_attempts

    async def allocate(self) -> str:
        """
        Generate a code and verify no live drop uses it.

        Returns:
            str: A code not currently in use

        Raises:
            AllocationExhausted: if every draw collided
        """
        for _ in range(self.max_attempts):
            code = generate_code(self.length)
            if not await self.is_taken(code):
                return code
        logger.error(f"Code allocation exhausted after {self.max_attempts} attempts")
        raise AllocationExhausted(self.max_attempts)
