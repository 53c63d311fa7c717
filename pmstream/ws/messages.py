"""
Wire codec for the CLOB order-book feed.

Inbound text frames carry either one JSON event object or a JSON array of
them. Every object names its kind in ``event_type``; the kind selects the
pydantic model used to validate it. Prices and sizes stay as the decimal
strings the exchange sends.
"""

from enum import Enum
from typing import Any, Iterable, Iterator, Optional, Type, TypeVar, Union
import logging

import orjson
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import FrameDecodeError, ValidationError
from ..models import ApiCredentials, ChannelType, MakerOrder, Side

logger = logging.getLogger(__name__)

PING = "PING"
PONG = "PONG"


class EventType(str, Enum):
    """Event kinds delivered on the feed."""
    BOOK = "book"
    PRICE_CHANGE = "price_change"
    TICK_SIZE_CHANGE = "tick_size_change"
    LAST_TRADE_PRICE = "last_trade_price"
    # User channel
    ORDER = "order"
    TRADE = "trade"


class _FeedModel(BaseModel):
    """Lenient base: unknown fields ignored, JSON numbers kept as strings."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def numbers_as_strings(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("side", mode="before", check_fields=False)
    @classmethod
    def blank_side(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper() or None
        return v


class OrderSummary(_FeedModel):
    """One price level of a book snapshot."""
    price: str
    size: str


class PriceChange(_FeedModel):
    """A single level update inside a price_change batch."""
    asset_id: str = ""
    side: Optional[Side] = None
    price: str = ""
    size: str = ""
    best_bid: str = ""
    best_ask: str = ""
    hash: str = ""


class BookMessage(_FeedModel):
    """Full order-book snapshot for one asset."""
    event_type: EventType = EventType.BOOK
    asset_id: str
    market: str = ""
    bids: list[OrderSummary] = Field(default_factory=list, validation_alias=AliasChoices("bids", "buys"))
    asks: list[OrderSummary] = Field(default_factory=list, validation_alias=AliasChoices("asks", "sells"))
    hash: str = ""
    timestamp: str = ""


class PriceChangeMessage(_FeedModel):
    """Batch of level updates for a market."""
    event_type: EventType = EventType.PRICE_CHANGE
    market: str = ""
    price_changes: list[PriceChange] = Field(
        default_factory=list,
        validation_alias=AliasChoices("price_changes", "changes")
    )
    asset_id: str = ""
    hash: str = ""
    timestamp: str = ""

    @model_validator(mode="after")
    def fill_asset_ids(self) -> "PriceChangeMessage":
        # Legacy batches carry one asset_id at the top level
        if self.asset_id:
            for change in self.price_changes:
                if not change.asset_id:
                    change.asset_id = self.asset_id
        return self


class TickSizeChangeMessage(_FeedModel):
    """Minimum tick size changed for an asset."""
    event_type: EventType = EventType.TICK_SIZE_CHANGE
    asset_id: str = ""
    market: str = ""
    old_tick_size: str
    new_tick_size: str
    timestamp: str = ""


class LastTradePriceMessage(_FeedModel):
    """A trade printed on the book."""
    event_type: EventType = EventType.LAST_TRADE_PRICE
    asset_id: str = ""
    market: str = ""
    side: Optional[Side] = None
    price: str
    size: str = ""
    fee_rate_bps: str = ""
    timestamp: str = ""


class OrderMessage(_FeedModel):
    """Order placement, update or cancellation (user channel)."""
    event_type: EventType = EventType.ORDER
    id: str
    type: str = ""
    owner: str = ""
    order_owner: str = ""
    market: str = ""
    asset_id: str = ""
    side: Optional[Side] = None
    outcome: str = ""
    price: str = ""
    original_size: str = ""
    size_matched: str = ""
    associate_trades: Optional[list[str]] = None
    timestamp: str = ""


class TradeMessage(_FeedModel):
    """Fill involving one of the user's orders (user channel)."""
    event_type: EventType = EventType.TRADE
    id: str
    type: str = ""
    status: str = ""
    market: str = ""
    asset_id: str = ""
    side: Optional[Side] = None
    outcome: str = ""
    price: str = ""
    size: str = ""
    fee_rate_bps: str = ""
    owner: str = ""
    trade_owner: str = ""
    taker_order_id: str = ""
    maker_orders: list[MakerOrder] = Field(default_factory=list)
    matchtime: str = ""
    last_update: str = ""
    timestamp: str = ""


MarketChannelMessage = Union[
    BookMessage,
    PriceChangeMessage,
    TickSizeChangeMessage,
    LastTradePriceMessage,
    OrderMessage,
    TradeMessage,
]

_EVENT_MODELS: dict[str, Type[_FeedModel]] = {
    EventType.BOOK.value: BookMessage,
    EventType.PRICE_CHANGE.value: PriceChangeMessage,
    EventType.TICK_SIZE_CHANGE.value: TickSizeChangeMessage,
    EventType.LAST_TRADE_PRICE.value: LastTradePriceMessage,
    EventType.ORDER.value: OrderMessage,
    EventType.TRADE.value: TradeMessage,
}

M = TypeVar("M", bound=BaseModel)


def _as_text(payload: Any) -> str:
    """Best-effort text form of a payload for error reports."""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8", errors="replace")
    try:
        return orjson.dumps(payload, default=str).decode("utf-8")
    except TypeError:
        return repr(payload)


def parse_message(payload: Any) -> MarketChannelMessage:
    """
    Decode one event.

    Args:
        payload: Raw JSON text (str or bytes) or an already-parsed JSON value

    Returns:
        Typed event model selected by ``event_type``

    Raises:
        FrameDecodeError: Invalid JSON, non-object payload, missing or
            unknown ``event_type``, or a payload that fails validation.
            ``raw`` holds the offending payload.
    """
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            data = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            raise FrameDecodeError(f"Invalid JSON payload: {e}", raw=_as_text(payload)) from None
    else:
        data = payload

    if not isinstance(data, dict):
        raise FrameDecodeError(
            f"Expected a JSON object, got {type(data).__name__}",
            raw=_as_text(payload)
        )

    kind = data.get("event_type")
    if kind is None:
        raise FrameDecodeError("Missing event_type", raw=_as_text(payload))

    model = _EVENT_MODELS.get(str(kind))
    if model is None:
        raise FrameDecodeError(f"Unknown event_type {kind!r}", raw=_as_text(payload))

    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise FrameDecodeError(
            f"Invalid {kind} payload ({e.error_count()} errors)",
            raw=_as_text(payload)
        ) from e


def iter_frame_payloads(text: str) -> Iterator[Any]:
    """
    Split one text frame into event payloads, in wire order.

    A JSON array yields each element; any other JSON value yields itself.
    Text that is not JSON at all is yielded unchanged, so decoding it
    reports exactly one error for the frame.
    """
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError:
        yield text
        return

    if isinstance(data, list):
        yield from data
    else:
        yield data


def downcast(message: BaseModel, cls: Type[M]) -> Optional[M]:
    """Return ``message`` if it is a ``cls`` event, else None."""
    return message if isinstance(message, cls) else None


def encode_subscribe(
    channel: Union[ChannelType, str],
    ids: Iterable[str],
    credentials: Optional[ApiCredentials] = None
) -> str:
    """
    Build the subscribe frame for a channel.

    The frame always lists the complete subscription set; the feed has no
    incremental subscribe.

    Raises:
        ValidationError: User channel without credentials
    """
    channel = ChannelType(channel)
    ids = list(ids)

    if channel == ChannelType.USER:
        if credentials is None:
            raise ValidationError("User channel subscription requires API credentials")
        frame = {
            "markets": ids,
            "type": channel.value,
            "auth": {
                "apiKey": credentials.key,
                "secret": credentials.secret,
                "passphrase": credentials.passphrase,
            },
        }
    else:
        frame = {"assets_ids": ids, "type": channel.value}

    return orjson.dumps(frame).decode("utf-8")
