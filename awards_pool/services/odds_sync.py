from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from awards_pool import db
from awards_pool.models import ActualWinner, Category, OddsSnapshot, Prediction
from awards_pool.services.odds_client import (
    KalshiClient,
    OddsFeedError,
    find_resolved_winner,
    match_category_nominee,
    match_winner_to_nominee,
)
from awards_pool.utils.cache_utils import invalidate_odds_cache
from awards_pool.utils.logging_config import ContextualLogger
from awards_pool.utils.scoring import is_valid_odds


class OddsSync:
    """
    Records market odds snapshots and detects winners from settled markets.

    Must run inside an application context.
    """

    def __init__(self, client=None):
        self.client = client or KalshiClient.from_config(current_app.config)

    def create_snapshots(self, year):
        """
        Snapshot odds for every nominee of every category in a year, then
        upgrade stored prediction odds for each category.

        Returns:
            dict: counts of categories, snapshots, upgraded and failed categories
        """
        log = ContextualLogger(__name__, {"job": "odds_snapshot", "year": year})
        stats = {"categories": 0, "snapshots": 0, "predictions_upgraded": 0, "failed": 0}

        categories = Category.get_for_year(year)
        if not categories:
            log.info("No categories found; nothing to snapshot")
            return stats

        snapshot_time = datetime.now(timezone.utc)

        for category in categories:
            stats["categories"] += 1
            try:
                created = self._snapshot_category(category, snapshot_time, log)
                db.session.commit()

                upgraded, checked = Prediction.upgrade_all_for_category(category)
                db.session.commit()
            except (OddsFeedError, SQLAlchemyError) as e:
                db.session.rollback()
                stats["failed"] += 1
                log.error(f"Snapshot failed for {category.slug}: {e}")
                continue
            except Exception as e:
                db.session.rollback()
                stats["failed"] += 1
                log.error(f"Unexpected error snapshotting {category.slug}: {e}", exc_info=True)
                continue

            stats["snapshots"] += created
            stats["predictions_upgraded"] += upgraded
            if upgraded:
                log.info(
                    f"Upgraded {upgraded}/{checked} predictions for {category.slug}"
                )

        if stats["snapshots"]:
            invalidate_odds_cache()

        log.info(
            f"Odds snapshot complete: {stats['snapshots']} snapshots across "
            f"{stats['categories']} categories, {stats['failed']} failed"
        )
        return stats

    def _snapshot_category(self, category, snapshot_time, log):
        markets = self.client.get_category_markets(category.slug, category.year)
        if not markets:
            log.debug(f"No markets for {category.slug}")
            return 0

        created = 0
        for nominee in category.nominees:
            match = match_category_nominee(category.slug, nominee, markets)
            if match is None:
                log.debug(f"No odds match for {category.slug} nominee {nominee.id}: {nominee.name}")
                continue

            _, price = match
            if not is_valid_odds(price):
                log.debug(f"Ignoring price {price} for nominee {nominee.id}")
                continue

            db.session.add(
                OddsSnapshot(
                    category_id=category.id,
                    nominee_id=nominee.id,
                    odds_percentage=float(price),
                    snapshot_time=snapshot_time,
                    nominee_name=nominee.name,
                    nominee_film=nominee.film,
                )
            )
            created += 1

        return created

    def detect_winners(self, year):
        """
        Store winners for categories whose markets have settled.

        Manually entered winners are never overwritten.

        Returns:
            dict: counts of categories checked, winners detected and failures
        """
        log = ContextualLogger(__name__, {"job": "winner_detection", "year": year})
        stats = {"checked": 0, "detected": 0, "failed": 0}

        for category in Category.get_for_year(year):
            existing = ActualWinner.get_for_category(category.id)
            if existing is not None and not existing.is_auto_detected:
                continue

            stats["checked"] += 1
            try:
                markets = self.client.get_category_markets(category.slug, year)
            except OddsFeedError as e:
                stats["failed"] += 1
                log.error(f"Market check failed for {category.slug}: {e}")
                continue

            try:
                winner_name = find_resolved_winner(markets)
            except (AttributeError, TypeError) as e:
                stats["failed"] += 1
                log.error(f"Malformed markets for {category.slug}: {e}", exc_info=True)
                continue

            if not winner_name:
                continue

            nominee = match_winner_to_nominee(winner_name, category.nominees)
            if nominee is None:
                log.warning(
                    f"Settled market names '{winner_name}' but no nominee matches in {category.slug}"
                )
                continue

            if existing is not None and existing.nominee_id == nominee.id:
                continue

            winner, message = ActualWinner.set_winner(
                category, nominee.id, auto_detected=True
            )
            if winner is None:
                log.info(f"Skipped {category.slug}: {message}")
                continue

            try:
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                stats["failed"] += 1
                log.error(f"Could not store winner for {category.slug}: {e}")
                continue

            stats["detected"] += 1
            log.info(f"Auto-detected winner for {category.slug}: {nominee.name}")

        if stats["detected"]:
            invalidate_odds_cache()

        return stats
