"""
Secret Store - Per-provider key/value secrets with tombstone-on-delete.

Each (provider, key) pair is in one of three states: absent (never set),
set, or tombstoned (deleted after having been set). ``get`` cannot tell
absent from tombstoned, but ``delete`` can: deleting an absent key is an
error, deleting a tombstoned key succeeds again.
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from errors import NotFoundError

logger = logging.getLogger(__name__)

SecretKey = Tuple[str, str]


class SecretStore:
    """
    Process-scoped secret storage keyed by provider and key.

    Writers to the same key serialize on a per-key lock; writers to
    different keys never wait on each other.
    """

    def __init__(self):
        # A stored value of None is a tombstone
        self._entries: Dict[SecretKey, Optional[str]] = {}
        self._locks: Dict[SecretKey, asyncio.Lock] = {}

    def _lock_for(self, provider: str, key: str) -> asyncio.Lock:
        lock = self._locks.get((provider, key))
        if lock is None:
            lock = self._locks[(provider, key)] = asyncio.Lock()
        return lock

    async def set(self, provider: str, key: str, value: str) -> None:
        """
        Create or overwrite a secret.

        Args:
            provider: The provider the secret belongs to
            key: The secret key
            value: The secret value
        """
        async with self._lock_for(provider, key):
            self._entries[(provider, key)] = value
        logger.debug(f"Set secret '{key}' for provider {provider}")

    async def get(self, provider: str, key: str) -> Dict[str, Optional[str]]:
        """
        Read a secret.

        Returns:
            ``{"value": value}``, where value is None when the key was
            never set or has been deleted.
        """
        return {"value": self._entries.get((provider, key))}

    async def delete(self, provider: str, key: str) -> Dict[str, bool]:
        """
        Tombstone a secret.

        Args:
            provider: The provider the secret belongs to
            key: The secret key

        Returns:
            ``{"found": True}``

        Raises:
            NotFoundError: If the key was never set for this provider
        """
        # Entries are never removed, so this check needs no lock
        if (provider, key) not in self._entries:
            raise NotFoundError(
                f"Could not find secret '{key}' for provider {provider}",
                detail={"provider": provider, "key": key},
            )
        async with self._lock_for(provider, key):
            self._entries[(provider, key)] = None
        logger.info(f"Deleted secret '{key}' for provider {provider}")
        return {"found": True}

    def has_key(self, provider: str, key: str) -> bool:
        """Check whether a key was ever set, including tombstoned keys."""
        return (provider, key) in self._entries

    def is_tombstoned(self, provider: str, key: str) -> bool:
        """Check whether a key was set and then deleted."""
        return self.has_key(provider, key) and self._entries[(provider, key)] is None
