"""
Type definitions for the pmstream client.

Uses Pydantic for runtime validation and type safety.
Prices and sizes from the exchange are kept as the decimal strings the
API sends; callers convert with Decimal where they need arithmetic.
"""

import logging
from enum import Enum
from typing import Optional, Any
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator, ConfigDict


INITIAL_CURSOR = "MA=="
END_CURSOR = "LTE="
# Older CLOB deployments signal the last page with a plain "-1"
END_CURSORS = frozenset({END_CURSOR, "-1"})


class Side(str, Enum):
    """Order side."""
    BUY = "BUY"
    SELL = "SELL"


class ChannelType(str, Enum):
    """WebSocket channel types."""
    MARKET = "market"
    USER = "user"


class PaginationPolicy(str, Enum):
    """How a multi-page fetch reacts to an error after the first page."""
    FAIL_FAST = "fail_fast"      # Raise on any page error
    BEST_EFFORT = "best_effort"  # Keep pages fetched so far, stop quietly


class ApiCredentials(BaseModel):
    """
    CLOB API key triple.

    SECURITY: secret and passphrase are hidden from repr.
    """
    model_config = ConfigDict(frozen=True)

    key: str
    secret: str = Field(..., repr=False)
    passphrase: str = Field(..., repr=False)


class WebSocketOptions(BaseModel):
    """Per-connection configuration for the order-book feed."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    channel: ChannelType = Field(default=ChannelType.MARKET, description="market or user")
    asset_ids: list[str] = Field(default_factory=list, description="Token IDs (market channel)")
    markets: list[str] = Field(default_factory=list, description="Condition IDs (user channel)")
    auto_reconnect: bool = Field(default=True, description="Reconnect after a dropped connection")
    reconnect_delay: float = Field(default=5.0, ge=0.0, description="Seconds before each redial")
    max_reconnect_attempts: int = Field(default=0, ge=0, description="0 = unbounded")
    debug: bool = Field(default=False, description="Verbose per-frame logging")
    proxy_url: Optional[str] = Field(None, description="Forward proxy URL")
    ping_interval: float = Field(default=10.0, gt=0.0, description="Seconds between PING frames")
    connect_timeout: float = Field(default=10.0, gt=0.0, description="Dial timeout (seconds)")
    logger: Optional[logging.Logger] = Field(None, exclude=True, repr=False,
                                             description="Logger handle (module logger if None)")

    @property
    def initial_ids(self) -> list[str]:
        """Identifiers that seed the subscription set for the configured channel."""
        return self.markets if self.channel == ChannelType.USER else self.asset_ids


# Market Data Models
class Market(BaseModel):
    """Market metadata from the Gamma API."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    question: str = ""
    slug: str = ""
    condition_id: str = Field("", alias="conditionId")
    outcomes: list[str] = Field(default_factory=list)
    tokens: Optional[list[str]] = Field(None, alias="clobTokenIds", description="CLOB token IDs per outcome")
    volume: Decimal = Field(Decimal("0"), alias="volumeNum")
    liquidity: Decimal = Field(Decimal("0"), alias="liquidityNum")
    active: bool = False
    closed: bool = False
    archived: Optional[bool] = None
    enable_order_book: Optional[bool] = Field(None, alias="enableOrderBook")
    end_date: Optional[datetime] = Field(None, alias="endDate")

    @field_validator("outcomes", "tokens", mode="before")
    @classmethod
    def parse_json_list(cls, v: Any) -> Any:
        """Gamma encodes list fields as JSON strings."""
        if isinstance(v, str):
            import json
            return json.loads(v) if v else []
        return v

    @field_validator("volume", "liquidity", mode="before")
    @classmethod
    def validate_numeric(cls, v: Any) -> Decimal:
        """Convert numeric fields to Decimal."""
        if v is None:
            return Decimal("0")
        if isinstance(v, Decimal):
            return v
        return Decimal(str(v))


class MakerOrder(BaseModel):
    """Maker side of a CLOB trade."""
    order_id: str = ""
    maker_address: str = ""
    owner: str = ""
    matched_amount: str = ""
    price: str = ""
    fee_rate_bps: str = ""
    asset_id: str = ""
    outcome: str = ""
    side: Optional[Side] = None


class Trade(BaseModel):
    """Trade from the authenticated CLOB trade history."""
    id: str
    taker_order_id: str = ""
    market: str = ""
    asset_id: str = ""
    side: Optional[Side] = None
    size: str = ""
    fee_rate_bps: str = ""
    price: str = ""
    status: str = ""
    match_time: str = ""
    last_update: str = ""
    outcome: str = ""
    bucket_index: int = 0
    owner: str = ""
    maker_address: str = ""
    maker_orders: list[MakerOrder] = Field(default_factory=list)
    transaction_hash: str = ""
    trader_side: str = ""


class TradeParams(BaseModel):
    """Filters for the trade history endpoint."""
    id: Optional[str] = None
    maker_address: Optional[str] = None
    market: Optional[str] = None
    asset_id: Optional[str] = None
    before: Optional[str] = None
    after: Optional[str] = None

    def to_query(self) -> dict[str, str]:
        """Query-string parameters for the set filters."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class TradePage(BaseModel):
    """One page of trade history."""
    trades: list[Trade] = Field(default_factory=list)
    cursor: str = Field(INITIAL_CURSOR, description="Cursor that produced this page")
    next_cursor: str = Field(END_CURSOR, description="Cursor for the following page")

    @property
    def is_last(self) -> bool:
        """True when no further page exists."""
        return self.next_cursor in END_CURSORS
