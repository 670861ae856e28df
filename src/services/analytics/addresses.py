"""
Zcash address-family detection by prefix.

Pure string checks, never raise: anything that is not a non-empty string
without whitespace is treated as "not an address".
"""

import re
from typing import Any, Optional

from src.core.enums import ShieldedAddressType


# Order matters: "ztestsapling" must win over the sprout testnet "zt" prefix
_SHIELDED_PREFIXES = (
    (re.compile(r"^(zs|ztestsapling)[0-9a-zA-Z]"), ShieldedAddressType.SAPLING),
    (re.compile(r"^(zc|zt)[0-9a-zA-Z]"), ShieldedAddressType.SPROUT),
    (re.compile(r"^u(test)?1[0-9a-zA-Z]"), ShieldedAddressType.UNIFIED),
)
_TRANSPARENT_PREFIX = re.compile(r"^t[1-3m][0-9a-zA-Z]")


def _clean(address: Any) -> Optional[str]:
    if not isinstance(address, str):
        return None
    value = address.strip()
    if not value or any(ch.isspace() for ch in value):
        return None
    return value


def get_shielded_address_type(address: Any) -> Optional[ShieldedAddressType]:
    """Return sapling / sprout / unified for a shielded address, else None."""
    value = _clean(address)
    if value is None:
        return None
    for pattern, address_type in _SHIELDED_PREFIXES:
        if pattern.match(value):
            return address_type
    return None


def is_shielded_address(address: Any) -> bool:
    return get_shielded_address_type(address) is not None


def is_transparent_address(address: Any) -> bool:
    value = _clean(address)
    return bool(value and _TRANSPARENT_PREFIX.match(value))
