"""
Nullifier derivation and one-time consumption.
"""

import logging
from typing import Any, Dict, Iterable, Set

from .eddsa import format_priv_key_for_babyjub
from .errors import NullifierReusedError
from .field import check_field_element
from .poseidon import hash2

logger = logging.getLogger(__name__)

# Domain tag for consuming a deactivation to add a new key
ADD_NEW_KEY_DOMAIN = 1444992409218394441042


def nullifier(priv_key: int, domain_tag: int = ADD_NEW_KEY_DOMAIN) -> int:
    """hash2(formatted private key, domain tag)"""
    return hash2([format_priv_key_for_babyjub(priv_key), domain_tag])


class NullifierRegistry:
    """Consumed nullifiers for a single operation domain"""

    def __init__(self, domain_tag: int = ADD_NEW_KEY_DOMAIN, consumed: Iterable[int] = ()):
        self.domain_tag = domain_tag
        self._consumed: Set[int] = set()
        for value in consumed:
            self._consumed.add(check_field_element(int(value), "nullifier"))

    def is_consumed(self, value: int) -> bool:
        return value in self._consumed

    def __contains__(self, value: object) -> bool:
        return value in self._consumed

    def __len__(self) -> int:
        return len(self._consumed)

    def consume(self, value: int):
        """Record a nullifier; a second call with the same value raises"""
        check_field_element(value, "nullifier")
        if value in self._consumed:
            logger.warning(f"Rejected replayed nullifier {value} for domain {self.domain_tag}")
            raise NullifierReusedError(f"Nullifier {value} already consumed")
        self._consumed.add(value)
        logger.debug(f"Consumed nullifier {value}")

    def export(self) -> Dict[str, Any]:
        return {'domain_tag': self.domain_tag, 'consumed': sorted(self._consumed)}

    @classmethod
    def load(cls, data: Dict[str, Any]) -> 'NullifierRegistry':
        return cls(int(data.get('domain_tag', ADD_NEW_KEY_DOMAIN)),
                   (int(v) for v in data.get('consumed', [])))
