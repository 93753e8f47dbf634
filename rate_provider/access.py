"""
Access control for the rate provider.

Two roles exist: the owner may change configuration, the updater may
submit supply/TVL observations. Roles are plain addresses kept in the
snapshot; callers identify themselves with an address on every mutating
call and the check happens before anything else runs.
"""

import logging

from eth_utils import is_address, to_checksum_address

from .errors import AccessControlError, InvalidParameterError
from .models.snapshot import RateSnapshot, ZERO_ADDRESS

logger = logging.getLogger(__name__)


def normalize_address(address: str, name: str = "address") -> str:
    """
    Validate an address and return its checksum form.

    Raises:
        InvalidParameterError: for malformed addresses and the zero address
    """
    if not isinstance(address, str) or not is_address(address):
        raise InvalidParameterError(f"invalid {name}: {address!r}")
    checksummed = to_checksum_address(address)
    if checksummed == ZERO_ADDRESS:
        raise InvalidParameterError(f"{name} cannot be the zero address")
    return checksummed


def _same_address(caller: str, expected: str) -> bool:
    if not isinstance(caller, str) or not is_address(caller):
        return False
    return to_checksum_address(caller) == to_checksum_address(expected)


class AccessController:
    """Role checks against the current snapshot"""

    def require_owner(self, snapshot: RateSnapshot, caller: str) -> None:
        if not _same_address(caller, snapshot.owner):
            logger.warning(f"Rejected owner-only call from {caller}")
            raise AccessControlError(f"caller {caller} is not the owner")

    def require_updater(self, snapshot: RateSnapshot, caller: str) -> None:
        if not _same_address(caller, snapshot.updater):
            logger.warning(f"Rejected updater-only call from {caller}")
            raise AccessControlError(f"caller {caller} is not the updater")
