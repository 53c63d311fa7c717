"""
CLOB REST client: API key issuance and trade history.

Key issuance uses L1 (wallet signature) headers; trade history uses L2
(HMAC) headers built from the issued key.
"""

from typing import Iterator, Optional, Any
import logging

from .base import BaseAPIClient
from ..config import FeedSettings
from ..models import (
    ApiCredentials,
    INITIAL_CURSOR,
    END_CURSOR,
    PaginationPolicy,
    Trade,
    TradePage,
    TradeParams,
)
from ..exceptions import APIError, PolymarketError
from ..auth.authenticator import Authenticator
from ..utils.retry import CircuitBreaker

logger = logging.getLogger(__name__)

TIME_PATH = "/time"
DERIVE_API_KEY_PATH = "/auth/derive-api-key"
CREATE_API_KEY_PATH = "/auth/api-key"
TRADES_PATH = "/data/trades"


class CLOBAPI(BaseAPIClient):
    """
    CLOB API client for credential issuance and trade history.
    """

    def __init__(
        self,
        settings: FeedSettings,
        authenticator: Optional[Authenticator] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize CLOB API client.

        Args:
            settings: Client settings
            authenticator: Authenticator for L2 headers
            circuit_breaker: Optional circuit breaker
        """
        super().__init__(
            base_url=settings.clob_url,
            settings=settings,
            circuit_breaker=circuit_breaker
        )
        self.authenticator = authenticator or Authenticator(chain_id=settings.chain_id)

    # ========== System ==========

    def get_server_time(self) -> int:
        """
        Get current server timestamp.

        Returns:
            UNIX timestamp

        Raises:
            APIError: If the request fails or the body has no timestamp
        """
        response = self.get(TIME_PATH)
        # Bare integer on current deployments, {"timestamp": ...} on older ones
        if isinstance(response, dict):
            response = response.get("timestamp")
        if response is None:
            raise APIError("Server time response missing timestamp")
        try:
            return int(response)
        except (TypeError, ValueError) as e:
            raise APIError(f"Invalid server time: {response!r}") from e

    # ========== API Keys (L1) ==========

    def derive_api_key(self, l1_headers: dict[str, str]) -> dict[str, Any]:
        """
        Derive the existing API key for the signing wallet.

        Args:
            l1_headers: Headers from Authenticator.create_l1_headers

        Returns:
            Raw response with apiKey, secret and passphrase
        """
        logger.debug(f"Deriving API key for {l1_headers.get('POLY_ADDRESS')}")
        return self.get(DERIVE_API_KEY_PATH, headers=l1_headers, retry=False)

    def create_api_key(self, l1_headers: dict[str, str]) -> dict[str, Any]:
        """
        Create a new API key for the signing wallet.

        Args:
            l1_headers: Headers from Authenticator.create_l1_headers

        Returns:
            Raw response with apiKey, secret and passphrase
        """
        logger.debug(f"Creating API key for {l1_headers.get('POLY_ADDRESS')}")
        return self.post(CREATE_API_KEY_PATH, headers=l1_headers, retry=False)

    # ========== Trade History (L2) ==========

    def get_trades_page(
        self,
        address: str,
        credentials: ApiCredentials,
        params: Optional[TradeParams] = None,
        next_cursor: str = INITIAL_CURSOR
    ) -> TradePage:
        """
        Fetch one page of trade history.

        Args:
            address: Wallet address the key belongs to
            credentials: API key triple
            params: Optional filters
            next_cursor: Page cursor ("MA==" for the first page)

        Returns:
            TradePage with the cursor of the following page
        """
        headers = self.authenticator.create_l2_headers(
            address=address,
            credentials=credentials,
            method="GET",
            path=TRADES_PATH
        )
        query = params.to_query() if params else {}
        query["next_cursor"] = next_cursor or INITIAL_CURSOR

        response = self.get(TRADES_PATH, params=query, headers=headers)

        if isinstance(response, list):
            # Unpaginated response shape
            data, following = response, END_CURSOR
        else:
            data = response.get("data") or []
            following = response.get("next_cursor") or END_CURSOR

        trades = []
        for item in data:
            try:
                trades.append(Trade.model_validate(item))
            except ValueError as e:
                logger.warning(f"Failed to parse trade {item.get('id')}: {e}")

        return TradePage(trades=trades, cursor=query["next_cursor"], next_cursor=following)

    def iter_trade_pages(
        self,
        address: str,
        credentials: ApiCredentials,
        params: Optional[TradeParams] = None,
        next_cursor: str = INITIAL_CURSOR,
        policy: PaginationPolicy = PaginationPolicy.BEST_EFFORT
    ) -> Iterator[TradePage]:
        """
        Lazily walk trade history pages.

        Stops after the page whose ``next_cursor`` is an end cursor. To
        resume later, pass the last page's ``next_cursor`` back in.

        Policy:
            FAIL_FAST: any page error propagates.
            BEST_EFFORT: a first-page error propagates; a later error ends
                iteration with a warning, keeping the pages already yielded.
        """
        cursor = next_cursor or INITIAL_CURSOR
        first = True

        while True:
            try:
                page = self.get_trades_page(address, credentials, params, cursor)
            except PolymarketError as e:
                if first or policy == PaginationPolicy.FAIL_FAST:
                    raise
                logger.warning(
                    f"Trade history stopped at cursor {cursor}: {type(e).__name__}: {e}"
                )
                return

            yield page
            if page.is_last:
                return
            cursor = page.next_cursor
            first = False

    def get_trades(
        self,
        address: str,
        credentials: ApiCredentials,
        params: Optional[TradeParams] = None,
        only_first_page: bool = False,
        next_cursor: str = INITIAL_CURSOR,
        policy: PaginationPolicy = PaginationPolicy.BEST_EFFORT
    ) -> list[Trade]:
        """
        Collect trade history into a list.

        Args:
            address: Wallet address the key belongs to
            credentials: API key triple
            params: Optional filters
            only_first_page: Stop after one page
            next_cursor: Starting cursor
            policy: Error handling after the first page

        Returns:
            Trades in page order
        """
        trades: list[Trade] = []
        for page in self.iter_trade_pages(address, credentials, params, next_cursor, policy):
            trades.extend(page.trades)
            if only_first_page:
                break

        logger.info(f"Fetched {len(trades)} trades")
        return trades
