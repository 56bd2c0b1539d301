"""Pydantic schemas for Questrade payloads and stored records.

Stored records are encoded with the upstream field names, so a value in
the store reads exactly like the API response it came from.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class StoredModel(BaseModel):
    """Base for records that round-trip through the persistent store."""

    def to_bytes(self) -> bytes:
        """Encode as UTF-8 JSON using the upstream field names."""
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        return cls.model_validate_json(data)


class Token(StoredModel):
    """OAuth2 credential bundle returned by the refresh-token grant.

    ``refreshed_at`` is not part of the upstream payload; it is stamped by
    the agent when the token is obtained so expiry can be checked later.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(min_length=1, repr=False)
    token_type: str
    expires_in: int
    refresh_token: str = Field(min_length=1, repr=False)
    api_server: str = Field(min_length=1)
    refreshed_at: datetime | None = None

    @field_validator("api_server")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        """Endpoint paths are appended directly, e.g. ``{api_server}v1/accounts``."""
        if not v.endswith("/"):
            return v + "/"
        return v

    @property
    def expires_at(self) -> datetime | None:
        """When the access token stops working, if known."""
        if self.refreshed_at is None:
            return None
        return self.refreshed_at + timedelta(seconds=self.expires_in)

    def is_valid_at(self, now: datetime, margin: timedelta = timedelta(0)) -> bool:
        """Check whether the access token is still usable at ``now``.

        A token with no ``refreshed_at`` (e.g. stored by an older version)
        is treated as expired.
        """
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return now < expires_at - margin


class QuestradeRecord(StoredModel):
    """Base for camelCase account/activity payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class Account(QuestradeRecord):
    """A brokerage account, keyed by its stable account number."""

    type: str = ""
    number: str = Field(min_length=1)
    status: str = ""
    is_primary: bool = False
    is_billing: bool = False
    client_account_type: str = ""

    @field_validator("type", "status", "client_account_type", mode="before")
    @classmethod
    def null_text_to_empty(cls, v):
        if v is None:
            return ""
        return v

    @field_validator("is_primary", "is_billing", mode="before")
    @classmethod
    def null_flag_to_false(cls, v):
        if v is None:
            return False
        return v


class AccountsResponse(QuestradeRecord):
    """Response body of ``GET v1/accounts``.

    A missing or null ``accounts`` list decodes to no accounts.
    """

    accounts: list[Account] = Field(default_factory=list)
    user_id: int | None = None

    @field_validator("accounts", mode="before")
    @classmethod
    def null_accounts_to_empty(cls, v):
        if v is None:
            return []
        return v


class Activity(QuestradeRecord):
    """One account event (trade, transfer, dividend, fee...).

    ``local_sequence_id`` is assigned when the record is first stored and
    never changes afterwards.
    """

    trade_date: datetime | None = None
    transaction_date: datetime | None = None
    settlement_date: datetime | None = None
    action: str = ""
    symbol: str = ""
    symbol_id: int = 0
    description: str = ""
    currency: str = ""
    quantity: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    gross_amount: Decimal = Decimal("0")
    commission: Decimal = Decimal("0")
    net_amount: Decimal = Decimal("0")
    type: str = ""
    local_sequence_id: int | None = None

    @field_validator("trade_date", "transaction_date", "settlement_date", mode="before")
    @classmethod
    def blank_date_to_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator("action", "symbol", "description", "currency", "type", mode="before")
    @classmethod
    def null_text_to_empty(cls, v):
        if v is None:
            return ""
        return v

    @field_validator("symbol_id", mode="before")
    @classmethod
    def null_symbol_id_to_zero(cls, v):
        if v is None:
            return 0
        return v

    @field_validator(
        "quantity", "price", "gross_amount", "commission", "net_amount", mode="before"
    )
    @classmethod
    def null_amount_to_zero(cls, v):
        if v is None:
            return Decimal("0")
        return v


class ActivitiesResponse(QuestradeRecord):
    """Response body of ``GET v1/accounts/{id}/activities``.

    A body whose ``activities`` key is missing or null decodes to an
    empty window.
    """

    activities: list[Activity] = Field(default_factory=list)

    @field_validator("activities", mode="before")
    @classmethod
    def null_activities_to_empty(cls, v):
        if v is None:
            return []
        return v


class SyncCursor(StoredModel):
    """Progress of an in-flight activity sync for one account.

    ``anchor`` is the instant the run started walking back from, so a
    resumed run plans exactly the same windows as the interrupted one.
    """

    account_id: str
    anchor: datetime
    window_days: int
    horizon_days: int
    windows_completed: int = 0
    updated_at: datetime | None = None
