"""
Tests for the REST clients: error mapping, market discovery and trade history.
"""

from unittest.mock import Mock, patch

import orjson
import pytest
import requests

from pmstream.api.base import BaseAPIClient
from pmstream.api.clob import CLOBAPI, TRADES_PATH
from pmstream.api.gamma import GammaAPI
from pmstream.exceptions import (
    APIError,
    AuthenticationError,
    MarketDataError,
    RateLimitError,
    TimeoutError,
    ValidationError,
)
from pmstream.models import END_CURSOR, INITIAL_CURSOR, Market, PaginationPolicy, TradeParams


def make_response(body, status_code=200, headers=None):
    response = Mock()
    response.status_code = status_code
    response.content = body if isinstance(body, bytes) else orjson.dumps(body)
    response.text = response.content.decode()
    response.headers = headers or {}
    return response


def market(market_id, tokens, enable_order_book=True):
    return {
        "id": market_id,
        "question": f"Question {market_id}?",
        "conditionId": f"0x{market_id}",
        "clobTokenIds": orjson.dumps(tokens).decode(),
        "outcomes": '["Yes", "No"]',
        "volumeNum": 1000.5,
        "active": True,
        "enableOrderBook": enable_order_book,
    }


class TestBaseClient:

    @pytest.fixture
    def api(self, settings):
        return BaseAPIClient("https://api.test", settings)

    def test_success(self, api):
        with patch.object(api.session, "request", return_value=make_response({"ok": True})) as request:
            assert api.get("/x", params={"a": 1}) == {"ok": True}

        kwargs = request.call_args.kwargs
        assert kwargs["url"] == "https://api.test/x"
        assert kwargs["params"] == {"a": 1}
        assert kwargs["timeout"] == (api.settings.connect_timeout, api.settings.request_timeout)

    @pytest.mark.parametrize("status,error", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, APIError),
        (500, APIError),
    ])
    def test_status_mapping(self, api, status, error):
        with patch.object(api.session, "request", return_value=make_response({"error": "x"}, status)):
            with pytest.raises(error):
                api.get("/x")

    def test_api_error_keeps_status(self, api):
        with patch.object(api.session, "request", return_value=make_response({"error": "gone"}, 410)):
            with pytest.raises(APIError) as exc_info:
                api.get("/x")
        assert exc_info.value.status_code == 410
        assert exc_info.value.response == {"error": "gone"}

    def test_rate_limited(self, api):
        response = make_response(b"slow down", 429, headers={"Retry-After": "2"})
        with patch.object(api.session, "request", return_value=response):
            with pytest.raises(RateLimitError) as exc_info:
                api.get("/x")
        assert exc_info.value.retry_after == 2.0
        assert exc_info.value.endpoint == "/x"

    def test_timeout(self, api):
        with patch.object(api.session, "request", side_effect=requests.exceptions.ReadTimeout("slow")):
            with pytest.raises(TimeoutError):
                api.get("/x")

    def test_connection_error(self, api):
        with patch.object(api.session, "request", side_effect=requests.exceptions.ConnectionError("down")):
            with pytest.raises(APIError, match="Connection error"):
                api.get("/x")

    def test_other_transport_error(self, api):
        """Request errors outside timeout/connection still map to APIError."""
        error = requests.exceptions.ChunkedEncodingError("body cut short")
        with patch.object(api.session, "request", side_effect=error):
            with pytest.raises(APIError, match="Request failed"):
                api.get("/x")

    def test_invalid_url_not_retried(self, settings):
        api = BaseAPIClient("https://api.test", settings.model_copy(update={"max_retries": 2}))
        error = requests.exceptions.InvalidURL("bad host")
        with patch.object(api.session, "request", side_effect=error) as request, \
                patch("pmstream.utils.retry.time.sleep"):
            with pytest.raises(ValidationError, match="Invalid request"):
                api.get("/x")
        request.assert_called_once()

    def test_invalid_json(self, api):
        with patch.object(api.session, "request", return_value=make_response(b"<html>")):
            with pytest.raises(APIError, match="Invalid JSON"):
                api.get("/x")

    def test_retries_server_errors(self, settings):
        api = BaseAPIClient("https://api.test", settings.model_copy(update={"max_retries": 1}))
        responses = [make_response({"error": "x"}, 502), make_response([1])]

        with patch.object(api.session, "request", side_effect=responses), \
                patch("pmstream.utils.retry.time.sleep") as sleep:
            assert api.get("/x") == [1]
        sleep.assert_called_once()


class TestGammaAPI:

    @pytest.fixture
    def gamma(self, settings):
        return GammaAPI(settings)

    def test_get_markets_params(self, gamma):
        with patch.object(gamma, "get", return_value=[market("1", ["11", "12"])]) as get:
            markets = gamma.get_markets(limit=5000, offset=10, active=True, closed=False, slug="s")

        get.assert_called_once_with("/markets", params={
            "limit": 1000, "offset": 10, "slug": "s", "active": "true", "closed": "false",
        })
        assert markets[0].tokens == ["11", "12"]
        assert markets[0].condition_id == "0x1"
        assert markets[0].outcomes == ["Yes", "No"]

    def test_bad_entries_skipped(self, gamma):
        with patch.object(gamma, "get", return_value=[{"question": "no id"}, market("2", ["21"])]):
            markets = gamma.get_markets()
        assert [m.id for m in markets] == ["2"]

    def test_request_failure(self, gamma):
        with patch.object(gamma, "get", side_effect=APIError("down", status_code=503)):
            with pytest.raises(MarketDataError, match="Failed to fetch markets"):
                gamma.get_markets()

    def test_unexpected_shape(self, gamma):
        with patch.object(gamma, "get", return_value={"data": []}):
            with pytest.raises(MarketDataError):
                gamma.get_markets()

    def test_list_active_markets_paginates(self, gamma):
        pages = [
            [market("1", ["a"]), market("2", ["b"])],
            [market("3", ["c"])],
        ]
        with patch.object(gamma, "get", side_effect=pages) as get:
            markets = gamma.list_active_markets(page_size=2)

        assert [m.id for m in markets] == ["1", "2", "3"]
        offsets = [c.kwargs["params"]["offset"] for c in get.call_args_list]
        assert offsets == [0, 2]

    def test_bad_entry_does_not_end_pagination(self, gamma):
        """A full page with one unparseable entry still advances by the full page."""
        first = [market(str(i), [str(i)]) for i in range(99)] + [{"question": "no id"}]
        second = [market(str(i), [str(i)]) for i in range(100, 150)]
        with patch.object(gamma, "get", side_effect=[first, second]) as get:
            markets = gamma.list_active_markets(page_size=100)

        assert len(markets) == 149
        offsets = [c.kwargs["params"]["offset"] for c in get.call_args_list]
        assert offsets == [0, 100]

    def test_page_size_clamped_to_api_limit(self, gamma):
        """Oversized pages are requested at the API maximum and paged from there."""
        first = [market(str(i), [str(i)]) for i in range(1000)]
        second = [market(str(i), [str(i)]) for i in range(1000, 1003)]
        with patch.object(gamma, "get", side_effect=[first, second]) as get:
            markets = gamma.list_active_markets(page_size=5000)

        assert len(markets) == 1003
        params = [c.kwargs["params"] for c in get.call_args_list]
        assert [p["offset"] for p in params] == [0, 1000]
        assert {p["limit"] for p in params} == {1000}

    def test_list_active_markets_cap(self, gamma):
        page = [market(str(i), [str(i)]) for i in range(3)]
        with patch.object(gamma, "get", return_value=page) as get:
            markets = gamma.list_active_markets(page_size=3, max_markets=2)
        assert len(markets) == 2
        get.assert_called_once()

    def test_collect_asset_ids(self):
        markets = [
            Market.model_validate(market("1", ["a", "b"])),
            Market.model_validate(market("2", ["b", "c"])),
            Market.model_validate(market("3", ["x"], enable_order_book=False)),
            Market(id="4"),
        ]

        assert GammaAPI.collect_asset_ids(markets) == ["a", "b", "c"]
        assert GammaAPI.collect_asset_ids(markets, order_book_only=False) == ["a", "b", "c", "x"]


class TestCLOBAPI:

    ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"

    @pytest.fixture
    def clob(self, settings):
        authenticator = Mock()
        authenticator.create_l2_headers.return_value = {"POLY_API_KEY": "k"}
        return CLOBAPI(settings, authenticator=authenticator)

    @staticmethod
    def trade(trade_id):
        return {"id": trade_id, "market": "0xm", "side": "BUY", "price": "0.5", "size": "10"}

    @pytest.mark.parametrize("body", [1700000000, {"timestamp": 1700000000}, "1700000000"])
    def test_server_time(self, clob, body):
        with patch.object(clob, "get", return_value=body):
            assert clob.get_server_time() == 1700000000

    def test_server_time_missing(self, clob):
        with patch.object(clob, "get", return_value={}):
            with pytest.raises(APIError):
                clob.get_server_time()

    def test_api_key_calls_not_retried(self, clob):
        with patch.object(clob, "get", return_value={}) as get, \
                patch.object(clob, "post", return_value={}) as post:
            clob.derive_api_key({"POLY_ADDRESS": "0xabc"})
            clob.create_api_key({"POLY_ADDRESS": "0xabc"})

        get.assert_called_once_with("/auth/derive-api-key", headers={"POLY_ADDRESS": "0xabc"}, retry=False)
        post.assert_called_once_with("/auth/api-key", headers={"POLY_ADDRESS": "0xabc"}, retry=False)

    def test_trades_page(self, clob, credentials):
        body = {"data": [self.trade("t1"), {"bad": True}], "next_cursor": "Mg=="}
        with patch.object(clob, "get", return_value=body) as get:
            page = clob.get_trades_page(self.ADDRESS, credentials, TradeParams(market="0xm"))

        assert [t.id for t in page.trades] == ["t1"]
        assert page.cursor == INITIAL_CURSOR
        assert page.next_cursor == "Mg=="
        assert not page.is_last
        get.assert_called_once_with(
            TRADES_PATH,
            params={"market": "0xm", "next_cursor": INITIAL_CURSOR},
            headers={"POLY_API_KEY": "k"}
        )
        clob.authenticator.create_l2_headers.assert_called_once_with(
            address=self.ADDRESS, credentials=credentials, method="GET", path=TRADES_PATH
        )

    def test_list_response_is_last_page(self, clob, credentials):
        with patch.object(clob, "get", return_value=[self.trade("t1")]):
            page = clob.get_trades_page(self.ADDRESS, credentials)
        assert page.is_last

    @pytest.mark.parametrize("end", [END_CURSOR, "-1", None])
    def test_end_cursors(self, clob, credentials, end):
        with patch.object(clob, "get", return_value={"data": [], "next_cursor": end}):
            assert clob.get_trades_page(self.ADDRESS, credentials).is_last

    def test_get_trades_walks_pages(self, clob, credentials):
        pages = [
            {"data": [self.trade("t1")], "next_cursor": "Mg=="},
            {"data": [self.trade("t2")], "next_cursor": END_CURSOR},
        ]
        with patch.object(clob, "get", side_effect=pages) as get:
            trades = clob.get_trades(self.ADDRESS, credentials)

        assert [t.id for t in trades] == ["t1", "t2"]
        cursors = [c.kwargs["params"]["next_cursor"] for c in get.call_args_list]
        assert cursors == [INITIAL_CURSOR, "Mg=="]

    def test_only_first_page(self, clob, credentials):
        with patch.object(clob, "get", return_value={"data": [self.trade("t1")], "next_cursor": "Mg=="}) as get:
            trades = clob.get_trades(self.ADDRESS, credentials, only_first_page=True)
        assert len(trades) == 1
        get.assert_called_once()

    def test_resume_from_cursor(self, clob, credentials):
        with patch.object(clob, "get", return_value={"data": [], "next_cursor": END_CURSOR}) as get:
            clob.get_trades(self.ADDRESS, credentials, next_cursor="NQ==")
        assert get.call_args.kwargs["params"]["next_cursor"] == "NQ=="

    def test_first_page_error_raises(self, clob, credentials):
        with patch.object(clob, "get", side_effect=APIError("down", status_code=500)):
            with pytest.raises(APIError):
                clob.get_trades(self.ADDRESS, credentials, policy=PaginationPolicy.BEST_EFFORT)

    def test_best_effort_keeps_earlier_pages(self, clob, credentials):
        responses = [
            {"data": [self.trade("t1")], "next_cursor": "Mg=="},
            APIError("down", status_code=500),
        ]
        with patch.object(clob, "get", side_effect=responses):
            trades = clob.get_trades(self.ADDRESS, credentials, policy=PaginationPolicy.BEST_EFFORT)
        assert [t.id for t in trades] == ["t1"]

    def test_fail_fast_raises_on_later_page(self, clob, credentials):
        responses = [
            {"data": [self.trade("t1")], "next_cursor": "Mg=="},
            APIError("down", status_code=500),
        ]
        with patch.object(clob, "get", side_effect=responses):
            with pytest.raises(APIError):
                clob.get_trades(self.ADDRESS, credentials, policy=PaginationPolicy.FAIL_FAST)

    def test_iter_trade_pages_is_lazy(self, clob, credentials):
        with patch.object(clob, "get", return_value={"data": [], "next_cursor": "Mg=="}) as get:
            pages = clob.iter_trade_pages(self.ADDRESS, credentials)
            get.assert_not_called()
            next(pages)
            next(pages)
        assert get.call_count == 2
