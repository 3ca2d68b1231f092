"""
Version tokens for optimistic concurrency.

Tokens are opaque ETag-style strings. Each one combines a counter that
never repeats within a guard and a digest of the content it was issued for.

Author: LocalCosmos Team
Date: 2026-10-19
"""

import hashlib
import hmac
import itertools
from typing import Any, Optional

from .documents import canonical_json


class VersionGuard:
    """Issues and checks version tokens.

    A backend shares one guard across all of its containers, so a token
    is never issued twice for any slot, including after a delete and
    re-create at the same (partition, id).
    """

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def issue(self, content: Any) -> str:
        """Issue a new token for ``content``.

        Args:
            content: Document content being written

        Returns:
            Quoted opaque token
        """
        sequence = next(self._counter)
        digest = hashlib.sha256(canonical_json(content).encode("utf-8", "surrogatepass")).hexdigest()[:8]
        return f'"{sequence:016x}-{digest}"'

    @staticmethod
    def check(expected: Optional[str], actual: Optional[str]) -> bool:
        """Compare an expected token with the stored one."""
        if not isinstance(expected, str) or not isinstance(actual, str):
            return False
        return hmac.compare_digest(
            expected.encode("utf-8", "surrogatepass"),
            actual.encode("utf-8", "surrogatepass")
        )
