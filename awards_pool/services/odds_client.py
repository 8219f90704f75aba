import logging
import re
import time
import unicodedata
from functools import wraps

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.elections.kalshi.com/trade-api/v2"

# Category slug -> market series ticker
SERIES_TICKERS = {
    "best-picture": "KXOSCARPIC",
    "directing": "KXOSCARDIR",
    "actor-leading": "KXOSCARACTO",
    "actress-leading": "KXOSCARACTR",
    "actor-supporting": "KXOSCARSUPACTO",
    "actress-supporting": "KXOSCARSUPACTR",
    "writing-original": "KXOSCARSPLAY",
    "writing-adapted": "KXOSCARASPLAY",
    "cinematography": "KXOSCARCINE",
    "film-editing": "KXOSCAREDIT",
    "music-score": "KXOSCARSCORE",
    "music-song": "KXOSCARSONG",
    "sound": "KXOSCARSOUND",
    "production-design": "KXOSCARPROD",
    "visual-effects": "KXOSCARVIS",
    "costume-design": "KXOSCARCOSTUME",
    "makeup-hairstyling": "KXOSCARMAH",
    "international-feature": "KXOSCARINTLFILM",
    "animated-feature": "KXOSCARANIMATED",
    "documentary-feature": "KXOSCARDOCU",
    "documentary-short": "KXOSCARDSFILM",
    "animated-short": "KXOSCARAS",
    "live-action-short": "KXOSCARLASF",
    "casting": "KXOSCARCASTING",
}

# Event tickers that don't follow the SERIES-YY pattern
EVENT_TICKER_EXCEPTIONS = {
    (2026, "animated-feature"): "KXOSCARANIMATED-26b",
    (2026, "animated-short"): "KXOSCARAS-26b",
}

RESOLVED_STATUSES = ("resolved", "closed", "settled", "finalized")


class OddsFeedError(Exception):
    """Raised when the market feed cannot be reached after retries"""


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                last_attempt = attempt == max_retries - 1
                try:
                    response = func(self, *args, **kwargs)
                except requests.exceptions.RequestException as e:
                    if last_attempt:
                        raise OddsFeedError(f"Request failed: {e}") from e
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    time.sleep(delay)
                    continue

                if response.status_code == 429 and not last_attempt:
                    retry_after = float(
                        response.headers.get(
                            "Retry-After", base_delay * (backoff_factor**attempt)
                        )
                    )
                    logger.warning(
                        f"Rate limited. Waiting {retry_after}s before retry {attempt + 1}/{max_retries}"
                    )
                    time.sleep(retry_after)
                    continue

                if response.status_code >= 500 and not last_attempt:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Server error {response.status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    time.sleep(delay)
                    continue

                return response

            raise OddsFeedError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


def normalize_text(text):
    """Lowercase and strip accents so 'Sirāt' matches 'Sirat'"""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.lower().strip()


def slugify(text):
    return re.sub(r"[^a-z0-9]+", "-", normalize_text(text)).strip("-")


def get_market_price(market):
    """
    Market YES price in cents, which reads directly as a percentage.

    Uses yes_price, then last_price, then the rounded bid/ask midpoint.
    """
    if market.get("yes_price") is not None:
        return market["yes_price"]
    if market.get("last_price") is not None:
        return market["last_price"]
    if market.get("yes_bid") is not None and market.get("yes_ask") is not None:
        return round((market["yes_bid"] + market["yes_ask"]) / 2)
    return None


def _market_fields(market):
    return (
        normalize_text(market.get("title")),
        normalize_text(market.get("ticker")),
        normalize_text(market.get("subtitle")),
        normalize_text(market.get("yes_sub_title")),
    )


def match_nominee_to_market(name, film, markets):
    """
    Find the market quoting a nominee.

    Each market is tried against, in order: exact title, partial title,
    slug in ticker or title, subtitle, then yes-subtitle. The first market
    matching any strategy and carrying a price wins.

    Returns:
        tuple: (market, price) or None
    """
    search_name = normalize_text(name)
    search_film = normalize_text(film)
    name_slug = slugify(name)
    film_slug = slugify(film)

    if not search_name and not search_film:
        return None

    def contains(haystack, needle):
        return bool(needle) and needle in haystack

    for market in markets or []:
        title, ticker, subtitle, yes_sub_title = _market_fields(market)

        strategies = (
            title in (search_name, search_film) and bool(title),
            contains(title, search_name) or contains(title, search_film),
            contains(ticker, name_slug)
            or contains(title, name_slug)
            or contains(ticker, film_slug)
            or contains(title, film_slug),
            contains(subtitle, search_name) or contains(subtitle, search_film),
            contains(yes_sub_title, search_name) or contains(yes_sub_title, search_film),
        )

        if any(strategies):
            price = get_market_price(market)
            if price is not None:
                return market, price

    return None


def match_category_nominee(slug, nominee, markets):
    """
    Match a nominee with the category-specific fallbacks.

    International features are listed as "Country - Film", so the film alone
    is tried first. Casting nominees fall back to the film title alone.
    """
    match = None

    if slug == "international-feature" and nominee.film:
        match = match_nominee_to_market(nominee.film, None, markets)

    if match is None:
        match = match_nominee_to_market(nominee.name, nominee.film, markets)

    if match is None and slug == "casting" and nominee.film:
        match = match_nominee_to_market(nominee.film, None, markets)

    return match


def find_resolved_winner(markets):
    """
    Name of the winner from a settled market, or None.

    A settled market whose YES side paid 100 names the winner in
    yes_sub_title, subtitle or title.
    """
    for market in markets or []:
        if market.get("status") not in RESOLVED_STATUSES:
            continue
        if market.get("yes_price") == 100 or market.get("last_price") == 100:
            return (
                market.get("yes_sub_title")
                or market.get("subtitle")
                or market.get("title")
            )
    return None


def match_winner_to_nominee(winner_name, nominees):
    """Exact then partial case-insensitive name match; returns a nominee or None"""
    target = normalize_text(winner_name)
    if not target:
        return None

    for nominee in nominees:
        if target in (normalize_text(nominee.name), normalize_text(nominee.film)):
            return nominee

    for nominee in nominees:
        name = normalize_text(nominee.name)
        film = normalize_text(nominee.film)
        if (name and (target in name or name in target)) or (
            film and (target in film or film in target)
        ):
            return nominee

    return None


class KalshiClient:
    """
    Reads award prediction markets from the Kalshi trade API with rate
    limiting and retries
    """

    def __init__(
        self,
        api_base_url=None,
        ticker_overrides=None,
        min_request_interval=0.5,
        max_requests_per_minute=60,
    ):
        self.api_base_url = (api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.ticker_overrides = ticker_overrides or {}
        self.session = requests.Session()
        self.session.headers.update(
            {"User-Agent": "Awards-Pool/1.0", "Accept": "application/json"}
        )

        # Rate limiting configuration
        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = min_request_interval
        self.max_requests_per_minute = max_requests_per_minute
        self.request_timestamps = []

    @classmethod
    def from_config(cls, config):
        return cls(
            api_base_url=config.get("KALSHI_API_BASE_URL"),
            ticker_overrides=config.get("KALSHI_EVENT_TICKERS"),
        )

    def event_ticker_for(self, slug, year):
        """Event ticker for a category slug in a ceremony year, or None"""
        if slug in self.ticker_overrides:
            return self.ticker_overrides[slug]

        if (year, slug) in EVENT_TICKER_EXCEPTIONS:
            return EVENT_TICKER_EXCEPTIONS[(year, slug)]

        series = SERIES_TICKERS.get(slug)
        if series is None:
            return None
        return f"{series}-{year % 100:02d}"

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)
        self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, url, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()
        return self.session.get(url, params=params, timeout=30)

    def _candidate_requests(self, event_ticker):
        series_ticker = event_ticker.split("-")[0]
        return (
            (f"{self.api_base_url}/events/{event_ticker}", {"with_nested_markets": "true"}),
            (f"{self.api_base_url}/markets", {"event_ticker": event_ticker}),
            (f"{self.api_base_url}/markets", {"series_ticker": series_ticker, "status": "open"}),
            (f"{self.api_base_url}/markets", {"series_ticker": series_ticker}),
        )

    def fetch_markets(self, event_ticker):
        """
        Fetch the markets of an event, trying several endpoint shapes.

        Returns:
            list of market dicts; empty when no endpoint has any

        Raises:
            OddsFeedError: when every endpoint failed to respond
        """
        last_error = None
        responded = False

        for url, params in self._candidate_requests(event_ticker):
            try:
                response = self._make_api_request(url, params=params)
            except OddsFeedError as e:
                logger.warning(f"Odds request failed for {event_ticker} ({url}): {e}")
                last_error = e
                continue

            if response.status_code == 404:
                responded = True
                logger.debug(f"404 response for {event_ticker} ({url})")
                continue

            if not response.ok:
                logger.warning(
                    f"Non-200 response ({response.status_code}) for {event_ticker} ({url})"
                )
                continue

            responded = True
            try:
                data = response.json()
            except ValueError:
                logger.warning(f"Invalid JSON for {event_ticker} ({url})")
                continue

            if not isinstance(data, dict):
                logger.warning(f"Unexpected payload for {event_ticker} ({url})")
                continue

            event = data.get("event")
            markets = event.get("markets") if isinstance(event, dict) else None
            markets = markets or data.get("markets")
            if not isinstance(markets, list):
                markets = []
            markets = [market for market in markets if isinstance(market, dict)]
            if markets:
                logger.debug(f"Found {len(markets)} markets for {event_ticker} via {url}")
                return markets

        if last_error is not None and not responded:
            raise last_error

        logger.info(f"No markets found for {event_ticker}")
        return []

    def get_category_markets(self, slug, year):
        event_ticker = self.event_ticker_for(slug, year)
        if event_ticker is None:
            logger.debug(f"No event ticker for category {slug}")
            return []
        return self.fetch_markets(event_ticker)

    def get_rate_limit_status(self):
        """Get current rate limit status"""
        current_time = time.time()
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        return {
            "total_requests": self.request_count,
            "requests_last_minute": len(self.request_timestamps),
            "max_requests_per_minute": self.max_requests_per_minute,
            "min_request_interval": self.min_request_interval,
        }
