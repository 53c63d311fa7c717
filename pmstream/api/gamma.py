"""
Gamma API client for market metadata.

Used to discover the asset (token) IDs that seed a market feed.
"""

from typing import Iterable, Optional
import logging

from .base import BaseAPIClient
from ..config import FeedSettings
from ..models import Market
from ..exceptions import MarketDataError, PolymarketError
from ..utils.retry import CircuitBreaker

logger = logging.getLogger(__name__)


class GammaAPI(BaseAPIClient):
    """
    Gamma API client for market data.

    Read-only; no authentication.
    """

    def __init__(
        self,
        settings: FeedSettings,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        super().__init__(
            base_url=settings.gamma_url,
            settings=settings,
            circuit_breaker=circuit_breaker
        )

    MAX_PAGE_SIZE = 1000

    def _fetch_markets_page(self, params: dict) -> tuple[list[Market], int]:
        """
        One /markets request.

        Returns:
            Parsed markets and the number of entries the API returned,
            including any that failed to parse
        """
        try:
            response = self.get("/markets", params=params)
        except PolymarketError as e:
            logger.error(f"Failed to fetch markets: {e}")
            raise MarketDataError(f"Failed to fetch markets: {e}") from e

        if not isinstance(response, list):
            raise MarketDataError(f"Unexpected markets response: {type(response).__name__}")

        markets = []
        for data in response:
            try:
                markets.append(Market.model_validate(data))
            except ValueError as e:
                market_id = data.get("id") if isinstance(data, dict) else None
                logger.warning(f"Failed to parse market {market_id}: {e}")

        logger.debug(f"Fetched {len(markets)} markets (offset {params.get('offset')})")
        return markets, len(response)

    @staticmethod
    def _market_params(limit, offset, active, closed, archived, filters) -> dict:
        params = {"limit": limit, "offset": offset, **filters}
        for name, value in (("active", active), ("closed", closed), ("archived", archived)):
            if value is not None:
                params[name] = str(value).lower()
        return params

    def get_markets(
        self,
        limit: int = 100,
        offset: int = 0,
        active: Optional[bool] = None,
        closed: Optional[bool] = None,
        archived: Optional[bool] = None,
        **filters
    ) -> list[Market]:
        """
        Get markets with filters.

        Args:
            limit: Max results (default: 100, max: 1000)
            offset: Pagination offset
            active: Filter by active status
            closed: Filter by closed status
            archived: Filter by archived status
            **filters: Additional query filters (slug, tag_id, ...)

        Returns:
            List of markets; unparseable entries are skipped

        Raises:
            MarketDataError: If request fails
        """
        params = self._market_params(
            min(limit, self.MAX_PAGE_SIZE), offset, active, closed, archived, filters
        )
        markets, _ = self._fetch_markets_page(params)
        return markets

    def list_active_markets(
        self,
        page_size: int = 100,
        max_markets: Optional[int] = None
    ) -> list[Market]:
        """
        Auto-paginate through active, non-closed, non-archived markets.

        Offsets advance by the number of entries the API returned, so a
        market that fails to parse neither shifts nor ends pagination.

        Args:
            page_size: Batch size per request (capped at 1000)
            max_markets: Stop after this many markets (all if None)

        Returns:
            Markets in API order
        """
        limit = min(page_size, self.MAX_PAGE_SIZE)
        offset = 0
        all_markets: list[Market] = []

        while max_markets is None or len(all_markets) < max_markets:
            params = self._market_params(limit, offset, True, False, False, {})
            batch, returned = self._fetch_markets_page(params)
            all_markets.extend(batch)
            offset += returned

            # Short page is the last page
            if returned < limit:
                break

        if max_markets is not None:
            all_markets = all_markets[:max_markets]

        logger.info(f"Fetched {len(all_markets)} active markets")
        return all_markets

    @staticmethod
    def collect_asset_ids(markets: Iterable[Market], order_book_only: bool = True) -> list[str]:
        """
        Token IDs of the given markets, de-duplicated, in market order.

        Args:
            markets: Markets from get_markets / list_active_markets
            order_book_only: Skip markets with the order book disabled
        """
        seen: dict[str, None] = {}
        for market in markets:
            if order_book_only and market.enable_order_book is False:
                continue
            for token_id in market.tokens or []:
                if token_id:
                    seen.setdefault(str(token_id), None)
        return list(seen)
