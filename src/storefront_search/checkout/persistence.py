"""
Checkout State Persistence

Saves and restores checkout sessions through UniversalStorage.

Key families
------------
- Checkout session (24 hours): `partyondelivery_checkout_state`, plus the
  short-lived `partyondelivery_customer` / `partyondelivery_address` drafts
- Remembered customer (30 days): `persistent-checkout-info`
- Delivery-app referrer for "Back to Cart": `last-delivery-app-url`

Expiry is enforced twice: UniversalStorage drops expired envelopes, and this
layer checks the record's own `expiresAt` / `lastUsed` fields. Clearing the
checkout session never touches the remembered-customer family.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..storage.universal import (
    ADDRESS_KEY,
    CHECKOUT_KEYS,
    CHECKOUT_STATE_KEY,
    CUSTOMER_KEY,
    DELIVERY_APP_REFERRER_KEY,
    PERSISTENT_CHECKOUT_KEY,
    UniversalStorage,
    get_universal_storage,
)

logger = logging.getLogger("storefront.checkout")


CHECKOUT_TTL_MINUTES = 24 * 60
DRAFT_TTL_MINUTES = 60
PERSISTENT_TTL_MINUTES = 30 * 24 * 60


# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class CustomerInfo(_CamelModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""


class AddressInfo(_CamelModel):
    address: str = ""
    unit: Optional[str] = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    instructions: Optional[str] = ""


class AppliedDiscount(_CamelModel):
    code: str
    type: Literal["percentage", "free_shipping"]
    value: float


class CheckoutState(_CamelModel):
    """
    A (possibly partial) checkout session.

    `delivery_info` is owned by the delivery widget and kept opaque here.
    """

    delivery_info: Optional[Dict[str, Any]] = None
    customer_info: Optional[CustomerInfo] = None
    address_info: Optional[AddressInfo] = None
    tip_percentage: Optional[float] = Field(default=None, ge=0)
    applied_discount: Optional[AppliedDiscount] = None
    current_step: Optional[Literal["datetime", "address", "payment"]] = None
    saved_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("saved_at", "expires_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Timestamps without an offset were written as UTC
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at


class PersistentCheckoutData(_CamelModel):
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)
    address_info: AddressInfo = Field(default_factory=AddressInfo)
    last_used: int = Field(..., ge=0, description="Epoch milliseconds.")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------

class CheckoutPersistence:
    """
    Checkout session and remembered-customer storage over UniversalStorage.

    No method raises on storage trouble; the storage layer absorbs tier
    failures and invalid stored records read as absent.
    """

    def __init__(
        self,
        storage: Optional[UniversalStorage] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage or get_universal_storage()
        self._clock = clock

    # ------------------------------------------------------------------
    # Checkout session
    # ------------------------------------------------------------------

    def save_checkout_state(
        self,
        partial: Union[CheckoutState, Mapping[str, Any]],
    ) -> bool:
        """
        Merge `partial` onto the stored state and save it for 24 hours.

        Returns False (and stores nothing) if the merged state is invalid.
        """
        try:
            update = (
                partial
                if isinstance(partial, CheckoutState)
                else CheckoutState.model_validate(partial)
            )
        except ValidationError as exc:
            logger.error(
                "Rejected invalid checkout state update: %d error(s)", exc.error_count()
            )
            return False

        updates = update.model_dump(by_alias=True, exclude_unset=True, mode="json")

        existing = self.get_checkout_state()
        merged: Dict[str, Any] = (
            existing.model_dump(by_alias=True, exclude_none=True, mode="json")
            if existing
            else {}
        )
        merged.update(updates)

        now = self._clock()
        merged["savedAt"] = now.isoformat()
        merged["expiresAt"] = (now + timedelta(minutes=CHECKOUT_TTL_MINUTES)).isoformat()

        try:
            state = CheckoutState.model_validate(merged)
        except ValidationError as exc:
            logger.error("Failed to save checkout state: %s", exc)
            return False

        self._storage.set_item(
            CHECKOUT_STATE_KEY,
            state.model_dump(by_alias=True, exclude_none=True, mode="json"),
            CHECKOUT_TTL_MINUTES,
        )
        logger.info("Checkout state saved (step=%s)", state.current_step)
        return True

    def get_checkout_state(self) -> Optional[CheckoutState]:
        """
        Return the saved checkout state, or None if absent or expired.

        An expired record clears the whole checkout key family.
        """
        data = self._storage.get_item(CHECKOUT_STATE_KEY)
        if not data:
            return None

        try:
            state = CheckoutState.model_validate(data)
        except ValidationError:
            logger.warning("Discarding unreadable checkout state")
            self._storage.remove_item(CHECKOUT_STATE_KEY)
            return None

        if state.is_expired(self._clock()):
            logger.info("Checkout state expired; clearing")
            self.clear_checkout_state()
            return None

        return state

    def clear_checkout_state(self) -> None:
        """Remove the checkout key family only."""
        for key in CHECKOUT_KEYS:
            self._storage.remove_item(key)

    # ------------------------------------------------------------------
    # Short-lived drafts
    # ------------------------------------------------------------------

    def save_customer_info(self, info: Union[CustomerInfo, Mapping[str, Any]]) -> bool:
        customer = CustomerInfo.model_validate(info)
        return self._storage.set_item(
            CUSTOMER_KEY, customer.model_dump(by_alias=True), DRAFT_TTL_MINUTES
        )

    def load_customer_info(self) -> Optional[CustomerInfo]:
        return _load_model(self._storage.get_item(CUSTOMER_KEY), CustomerInfo)

    def save_address_info(self, info: Union[AddressInfo, Mapping[str, Any]]) -> bool:
        address = AddressInfo.model_validate(info)
        return self._storage.set_item(
            ADDRESS_KEY, address.model_dump(by_alias=True), DRAFT_TTL_MINUTES
        )

    def load_address_info(self) -> Optional[AddressInfo]:
        return _load_model(self._storage.get_item(ADDRESS_KEY), AddressInfo)

    # ------------------------------------------------------------------
    # Remembered customer
    # ------------------------------------------------------------------

    def save_persistent_data(
        self,
        customer_info: Union[CustomerInfo, Mapping[str, Any]],
        address_info: Union[AddressInfo, Mapping[str, Any]],
    ) -> bool:
        """
        Remember the customer for 30 days.

        Skipped (returns False) when there is neither an email nor an
        address worth remembering.
        """
        customer = CustomerInfo.model_validate(customer_info)
        address = AddressInfo.model_validate(address_info)

        if not (customer.email or address.address):
            return False

        data = PersistentCheckoutData(
            customer_info=customer,
            address_info=address,
            last_used=int(self._clock().timestamp() * 1000),
        )
        return self._storage.set_item(
            PERSISTENT_CHECKOUT_KEY,
            data.model_dump(by_alias=True),
            PERSISTENT_TTL_MINUTES,
        )

    def load_persistent_data(self) -> Optional[PersistentCheckoutData]:
        data = _load_model(
            self._storage.get_item(PERSISTENT_CHECKOUT_KEY), PersistentCheckoutData
        )
        if data is None:
            return None

        now_ms = int(self._clock().timestamp() * 1000)
        if now_ms - data.last_used >= PERSISTENT_TTL_MINUTES * 60 * 1000:
            self._storage.remove_item(PERSISTENT_CHECKOUT_KEY)
            return None

        return data

    def save_delivery_app_referrer(self, url: str) -> bool:
        return self._storage.set_item(DELIVERY_APP_REFERRER_KEY, url)

    def get_delivery_app_referrer(self) -> str:
        return self._storage.get_item(DELIVERY_APP_REFERRER_KEY) or "/"

    def clear_persistent_data(self) -> None:
        """Forget the remembered customer and the referrer."""
        self._storage.remove_item(PERSISTENT_CHECKOUT_KEY)
        self._storage.remove_item(DELIVERY_APP_REFERRER_KEY)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _load_model(data: Any, model: type[BaseModel]) -> Optional[Any]:
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        logger.warning("Discarding unreadable %s record", model.__name__)
        return None
