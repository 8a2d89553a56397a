"""
Universal Storage

Tiered key/value persistence that keeps working when individual tiers do
not: disabled storage, read-only disks, quota limits.

Guarantees
----------
- `set_item` never raises and always returns True; the memory tier is
  written unconditionally as the final safety net
- `get_item` returns the first hit walking durable -> session -> memory
- An expired item reads exactly like an absent one and is removed from
  every tier on the spot
- Corrupt entries read as "no value"; an unserializable value is logged and
  not stored
- A tier that raises is downgraded for the lifetime of the instance and is
  never retried

Values are wrapped in a StorageItem envelope and serialized as
`{"value": ..., "timestamp": ..., "expiresAt": ...}`.
"""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_core import PydanticSerializationError

from .backends import (
    DirectoryBackend,
    MemoryBackend,
    SessionBackend,
    StorageBackend,
    StorageCorruptEntryError,
)
from ..config import settings

logger = logging.getLogger("storefront.storage")


# ---------------------------------------------------------------------
# Key Families
# ---------------------------------------------------------------------

CUSTOMER_KEY = "partyondelivery_customer"
ADDRESS_KEY = "partyondelivery_address"
CHECKOUT_STATE_KEY = "partyondelivery_checkout_state"
PERSISTENT_CHECKOUT_KEY = "persistent-checkout-info"
DELIVERY_APP_REFERRER_KEY = "last-delivery-app-url"

CHECKOUT_KEYS = (CUSTOMER_KEY, ADDRESS_KEY, CHECKOUT_STATE_KEY)


# ---------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------

class StorageItem(BaseModel):
    """
    Stored value plus write time and optional expiry, both epoch ms.
    """

    value: Any = None
    timestamp: int = Field(..., ge=0)
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at is not None and now_ms > self.expires_at

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------
# Composite Storage
# ---------------------------------------------------------------------

class UniversalStorage:
    """
    Composite over an ordered list of storage tiers.

    The last tier is the safety net: it is written on every `set_item`
    whether or not an earlier tier succeeded. In the default configuration
    that is the memory tier.
    """

    def __init__(
        self,
        tiers: Sequence[StorageBackend],
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        if not tiers:
            raise ValueError("UniversalStorage requires at least one tier.")

        self._tiers: List[StorageBackend] = list(tiers)
        self._clock = clock or _now_ms
        self._available: Dict[str, bool] = {}

        for tier in self._tiers:
            self._available[tier.name] = tier.probe()

        logger.info("Storage availability: %s", self._available)

    @classmethod
    def default(cls) -> "UniversalStorage":
        """
        Build the standard durable -> session -> memory stack from settings.
        """
        return cls(
            [
                DirectoryBackend(settings.storage_dir, settings.storage_quota_bytes),
                SessionBackend(settings.storage_quota_bytes),
                MemoryBackend(),
            ]
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _safety_net(self) -> StorageBackend:
        return self._tiers[-1]

    def _downgrade(self, tier: StorageBackend, action: str, key: str, exc: Exception) -> None:
        logger.warning(
            "%s %s failed for %s (%s); disabling tier",
            tier.name,
            action,
            key,
            exc,
        )
        self._available[tier.name] = False

    def is_available(self, tier_name: str) -> bool:
        return self._available.get(tier_name, False)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_item(
        self,
        key: str,
        value: Any,
        expiration_minutes: Optional[float] = None,
    ) -> bool:
        """
        Store a value, optionally expiring after `expiration_minutes`.

        Returns
        -------
        bool
            Always True: the safety-net tier always receives the write.
        """
        now = self._clock()
        try:
            serialized = StorageItem(
                value=value,
                timestamp=now,
                expires_at=(
                    now + int(expiration_minutes * 60 * 1000)
                    if expiration_minutes
                    else None
                ),
            ).to_json()
        except (PydanticSerializationError, ValueError, OverflowError) as exc:
            # Nothing stored; the previous value for the key is dropped too
            logger.warning("Value for %s is not storable (%s); removing key", key, exc)
            self.remove_item(key)
            return True

        saved_to: Optional[str] = None
        for tier in self._tiers[:-1]:
            if not self._available[tier.name]:
                continue
            try:
                tier.write(key, serialized)
            except Exception as exc:
                self._downgrade(tier, "write", key, exc)
                continue
            saved_to = tier.name
            break

        # Final fallback, written unconditionally
        self._safety_net.write(key, serialized)

        if saved_to is None:
            logger.info("Saved to %s only: %s", self._safety_net.name, key)
        else:
            logger.debug("Saved to %s: %s", saved_to, key)

        return True

    def get_item(self, key: str) -> Any:
        """
        Return the most recent non-expired value for `key`, or None.
        """
        item: Optional[StorageItem] = None

        for tier in self._tiers:
            if tier is not self._safety_net and not self._available[tier.name]:
                continue
            try:
                raw = tier.read(key)
                if raw is None:
                    continue
                item = StorageItem.model_validate_json(raw)
            except (StorageCorruptEntryError, ValidationError):
                # The tier works; only this entry is bad
                logger.warning("Ignoring corrupt %s entry: %s", tier.name, key)
                continue
            except Exception as exc:
                self._downgrade(tier, "read", key, exc)
                continue

            logger.debug("Loaded from %s: %s", tier.name, key)
            break

        if item is None:
            return None

        if item.is_expired(self._clock()):
            logger.info("Item expired: %s", key)
            self.remove_item(key)
            return None

        return item.value

    def remove_item(self, key: str) -> None:
        """
        Remove `key` from every tier, ignoring individual tier failures.
        """
        for tier in self._tiers:
            try:
                tier.delete(key)
            except Exception as exc:
                logger.warning("%s removal failed for %s: %s", tier.name, key, exc)

        logger.debug("Removed from all storage: %s", key)

    def clear(self) -> None:
        """
        Remove the checkout key family.
        """
        for key in CHECKOUT_KEYS:
            self.remove_item(key)
        logger.info("Cleared checkout data from universal storage")

    def get_status(self) -> Dict[str, Any]:
        """
        Return tier availability for diagnostics.
        """
        status: Dict[str, Any] = {
            tier.name: self._available[tier.name] for tier in self._tiers[:-1]
        }
        status[f"{self._safety_net.name}_entries"] = len(self._safety_net)
        status["capabilities"] = {
            tier.name: self._available[tier.name] or tier is self._safety_net
            for tier in self._tiers
        }
        return status

    def close(self) -> None:
        for tier in self._tiers:
            tier.close()


@lru_cache
def get_universal_storage() -> UniversalStorage:
    """
    Process-wide storage singleton.
    """
    return UniversalStorage.default()
