"""Tests for the market odds client, nominee matching and the odds sync jobs."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests
from conftest import nominee_named

from awards_pool import db
from awards_pool.models import ActualWinner, OddsSnapshot, Prediction
from awards_pool.services.odds_client import (
    KalshiClient,
    OddsFeedError,
    find_resolved_winner,
    get_market_price,
    match_category_nominee,
    match_nominee_to_market,
    match_winner_to_nominee,
    normalize_text,
)
from awards_pool.services.odds_sync import OddsSync


def _response(status=200, payload=None):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.headers = {}
    response.json.return_value = payload or {}
    return response


def _client(responses):
    client = KalshiClient(min_request_interval=0)
    client.session = MagicMock()
    client.session.get.side_effect = responses
    return client


# ---------------------------------------------------------------------------
# Prices and matching
# ---------------------------------------------------------------------------

class TestMarketPrice:
    def test_prefers_yes_price(self):
        assert get_market_price({"yes_price": 30, "last_price": 40}) == 30

    def test_falls_back_to_last_price(self):
        assert get_market_price({"last_price": 40, "yes_bid": 10, "yes_ask": 12}) == 40

    def test_rounds_bid_ask_midpoint(self):
        assert get_market_price({"yes_bid": 21, "yes_ask": 24}) == 22

    def test_no_price(self):
        assert get_market_price({"yes_bid": 21}) is None


class TestMatching:
    markets = [
        {"title": "Will Anora win Best Picture?", "ticker": "KXOSCARPIC-26-ANO", "yes_price": 30},
        {"title": "Other", "ticker": "KXOSCARPIC-26-CON", "yes_sub_title": "Conclave",
         "last_price": 20},
        {"title": "Sirāt", "ticker": "KXOSCARINTLFILM-26-SIR", "yes_price": 15},
        {"title": "I'm Still Here", "ticker": "KXOSCARINTLFILM-26-ISH", "yes_bid": 40,
         "yes_ask": 44},
    ]

    def test_normalize_strips_accents(self):
        assert normalize_text("  Sirāt ") == "sirat"

    def test_exact_title(self):
        market, price = match_nominee_to_market("Sirat", None, self.markets)
        assert market["ticker"].endswith("SIR")
        assert price == 15

    def test_partial_title(self):
        _, price = match_nominee_to_market("Anora", "Anora", self.markets)
        assert price == 30

    def test_yes_subtitle(self):
        _, price = match_nominee_to_market("Conclave", None, self.markets)
        assert price == 20

    def test_no_match(self):
        assert match_nominee_to_market("Wicked", "Wicked", self.markets) is None

    def test_international_feature_tries_film_first(self):
        nominee = SimpleNamespace(name="Brazil - I'm Still Here", film="I'm Still Here")
        _, price = match_category_nominee("international-feature", nominee, self.markets)
        assert price == 42

    def test_casting_falls_back_to_film(self):
        nominee = SimpleNamespace(name="Nina Gold", film="Conclave")
        _, price = match_category_nominee("casting", nominee, self.markets)
        assert price == 20


class TestWinnerDetection:
    def test_settled_market_names_winner(self):
        markets = [
            {"status": "open", "yes_price": 60, "yes_sub_title": "Wicked"},
            {"status": "settled", "yes_price": 0, "yes_sub_title": "Conclave"},
            {"status": "closed", "last_price": 100, "yes_sub_title": "Anora"},
        ]
        assert find_resolved_winner(markets) == "Anora"

    def test_nothing_settled(self):
        assert find_resolved_winner([{"status": "open", "yes_price": 100}]) is None

    def test_match_winner_exact_before_partial(self):
        nominees = [
            SimpleNamespace(name="Anora Extended", film=None),
            SimpleNamespace(name="Anora", film="Anora"),
        ]
        assert match_winner_to_nominee("ANORA", nominees) is nominees[1]

    def test_match_winner_partial(self):
        nominees = [SimpleNamespace(name="Adrien Brody", film="The Brutalist")]
        assert match_winner_to_nominee("Brody", nominees) is nominees[0]

    def test_match_winner_none(self):
        nominees = [SimpleNamespace(name="Adrien Brody", film="The Brutalist")]
        assert match_winner_to_nominee("Timothée Chalamet", nominees) is None


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

class TestKalshiClient:
    def test_event_ticker_for_year(self):
        client = KalshiClient()
        assert client.event_ticker_for("best-picture", 2027) == "KXOSCARPIC-27"
        assert client.event_ticker_for("animated-short", 2026) == "KXOSCARAS-26b"
        assert client.event_ticker_for("best-stunts", 2026) is None

    def test_ticker_override(self):
        client = KalshiClient(ticker_overrides={"best-picture": "CUSTOM-1"})
        assert client.event_ticker_for("best-picture", 2026) == "CUSTOM-1"

    def test_event_endpoint_with_nested_markets(self):
        client = _client([_response(payload={"event": {"markets": [{"title": "Anora"}]}})])

        assert client.fetch_markets("KXOSCARPIC-26") == [{"title": "Anora"}]
        url = client.session.get.call_args.args[0]
        assert url.endswith("/events/KXOSCARPIC-26")

    def test_falls_through_to_markets_endpoint(self):
        client = _client([
            _response(status=404),
            _response(payload={"markets": [{"title": "Anora"}]}),
        ])

        assert client.fetch_markets("KXOSCARPIC-26") == [{"title": "Anora"}]
        assert client.session.get.call_args.kwargs["params"] == {
            "event_ticker": "KXOSCARPIC-26"
        }

    def test_no_markets_anywhere(self):
        client = _client([_response(payload={}) for _ in range(4)])
        assert client.fetch_markets("KXOSCARPIC-26") == []

    def test_unexpected_payload_shapes_are_skipped(self):
        client = _client([
            _response(payload=["unexpected"]),
            _response(payload={"event": "KXOSCARPIC-26", "markets": "none"}),
            _response(payload={"markets": ["junk", {"title": "Anora"}]}),
        ])

        assert client.fetch_markets("KXOSCARPIC-26") == [{"title": "Anora"}]

    @patch("awards_pool.services.odds_client.time.sleep")
    def test_retries_server_errors(self, sleep):
        client = _client([
            _response(status=502),
            _response(payload={"markets": [{"title": "Anora"}]}),
        ])

        assert client.fetch_markets("KXOSCARPIC-26") == [{"title": "Anora"}]
        sleep.assert_called_once()

    @patch("awards_pool.services.odds_client.time.sleep")
    def test_connection_failures_raise(self, sleep):
        client = _client(requests.exceptions.ConnectionError("down"))

        with pytest.raises(OddsFeedError):
            client.fetch_markets("KXOSCARPIC-26")

    def test_rate_limit_status(self):
        client = _client([_response(payload={"markets": [{"title": "x"}]})])
        client.fetch_markets("KXOSCARPIC-26")

        status = client.get_rate_limit_status()
        assert status["total_requests"] == 1
        assert status["requests_last_minute"] == 1


# ---------------------------------------------------------------------------
# Sync jobs
# ---------------------------------------------------------------------------

class FakeClient:
    def __init__(self, markets_by_slug=None, error=None):
        self.markets_by_slug = markets_by_slug or {}
        self.error = error

    def get_category_markets(self, slug, year):
        if self.error:
            raise self.error
        return self.markets_by_slug.get(slug, [])


class TestOddsSync:
    def test_create_snapshots_and_upgrade_predictions(self, make):
        owner, _ = make.user()
        category = make.category()
        pool = make.pool(owner)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 30)
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        client = FakeClient({"best-picture": [
            {"title": "Anora", "yes_price": 18},
            {"title": "Wicked", "yes_price": 0},
        ]})
        stats = OddsSync(client).create_snapshots(2026)

        assert stats["snapshots"] == 1
        assert stats["predictions_upgraded"] == 1
        assert OddsSnapshot.get_current_odds(category.id, anora.id) == 18
        assert db.session.get(Prediction, prediction.id).odds_percentage == 18

    def test_feed_failure_is_counted_not_raised(self, make):
        make.category()
        stats = OddsSync(FakeClient(error=OddsFeedError("down"))).create_snapshots(2026)
        assert stats["failed"] == 1
        assert stats["snapshots"] == 0

    def test_malformed_markets_do_not_stop_other_categories(self, make):
        make.category()
        sound = make.category(slug="sound", nominees=("Dune", "Wicked"))
        client = FakeClient({
            "best-picture": ["unexpected"],
            "sound": [{"title": "Dune", "yes_price": 40}],
        })

        stats = OddsSync(client).create_snapshots(2026)

        assert stats["failed"] == 1
        assert stats["snapshots"] == 1
        assert OddsSnapshot.get_current_odds(sound.id, nominee_named(sound, "Dune").id) == 40

    def test_detect_winner(self, make):
        category = make.category()
        client = FakeClient({"best-picture": [
            {"status": "closed", "yes_price": 100, "yes_sub_title": "Anora"},
        ]})

        stats = OddsSync(client).detect_winners(2026)

        assert stats["detected"] == 1
        winner = ActualWinner.get_for_category(category.id)
        assert winner.nominee_id == nominee_named(category, "Anora").id
        assert winner.is_auto_detected is True

    def test_detect_skips_manual_winner(self, make):
        category = make.category()
        make.winner(category, nominee_named(category, "Wicked"))
        client = FakeClient({"best-picture": [
            {"status": "closed", "yes_price": 100, "yes_sub_title": "Anora"},
        ]})

        stats = OddsSync(client).detect_winners(2026)

        assert stats == {"checked": 0, "detected": 0, "failed": 0}
        assert ActualWinner.get_for_category(category.id).nominee_id == nominee_named(
            category, "Wicked"
        ).id
