#!/usr/bin/env python3
"""
Awards Pool Management CLI

Command-line management for the Awards Pool application: database setup,
seeding categories, issuing API tokens, pools, odds and winners.
"""

import json
import logging
import os

# One-off commands never need the background jobs
os.environ.setdefault("SCHEDULER_ENABLED", "False")

import click  # noqa: E402
from flask import current_app  # noqa: E402
from flask.cli import with_appcontext  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.exc import IntegrityError, SQLAlchemyError  # noqa: E402

from awards_pool import create_app, db  # noqa: E402
from awards_pool.models import (  # noqa: E402
    ActualWinner,
    Category,
    Nominee,
    OddsSnapshot,
    Pool,
    Prediction,
    User,
)
from awards_pool.models.category import default_points_for_slug  # noqa: E402
from awards_pool.services.odds_client import OddsFeedError  # noqa: E402


def _default_year():
    return current_app.config.get("POOL_YEAR")


@click.group()
def cli():
    """Awards Pool Management CLI"""
    pass


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command("init")
@with_appcontext
def init_db():
    """Initialize database tables"""
    db.create_all()
    click.echo("✅ Database tables created successfully!")


@db_cmd.command()
@click.option("--yes", is_flag=True, help="Skip confirmation")
@with_appcontext
def reset(yes):
    """⚠️  DANGER: Drop and recreate all tables"""
    if not yes and not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    db.drop_all()
    db.create_all()
    click.echo("✅ Database reset successfully!")


# Catalog
@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def seed(path):
    """
    Load categories and nominees from a JSON file.

    Expected shape: {"year": 2026, "categories": [{"slug": ..., "name": ...,
    "default_points": 10, "nominees": [{"name": ..., "film": ...}]}]}.
    Existing rows are kept, so seeding twice is harmless.
    """
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)

    year = int(data["year"])
    categories_added = 0
    nominees_added = 0

    try:
        for entry in data.get("categories", []):
            slug = entry["slug"]
            category = Category.get_by_slug(slug, year)
            if category is None:
                category = Category(
                    slug=slug,
                    year=year,
                    name=entry.get("name", slug),
                    default_points=entry.get(
                        "default_points", default_points_for_slug(slug)
                    ),
                )
                db.session.add(category)
                db.session.flush()
                categories_added += 1

            for item in entry.get("nominees", []):
                existing = Nominee.query.filter_by(
                    category_id=category.id, name=item["name"], film=item.get("film")
                ).first()
                if existing:
                    continue
                db.session.add(
                    Nominee(
                        category_id=category.id,
                        name=item["name"],
                        film=item.get("film"),
                        song=item.get("song"),
                        description=item.get("description"),
                    )
                )
                nominees_added += 1

        db.session.commit()
    except (KeyError, SQLAlchemyError) as e:
        db.session.rollback()
        click.echo(f"❌ Seeding failed: {e}")
        logging.error(f"Seed failed for {path}: {e}")
        raise SystemExit(1)

    click.echo(
        f"✅ Seeded {year}: {categories_added} categories, {nominees_added} nominees added"
    )


# User Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command("create")
@click.argument("username")
@click.argument("email")
@click.option("--display-name", help="Name shown on leaderboards")
@click.option("--superuser", is_flag=True, help="Allow entering winners")
@with_appcontext
def create_user(username, email, display_name, superuser):
    """Create a user and print their API token"""
    new_user = User(
        username=username,
        email=email,
        display_name=display_name,
        is_superuser=superuser,
    )
    token = new_user.generate_api_token()

    try:
        db.session.add(new_user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        click.echo(f"❌ User {username} or email {email} already exists!")
        raise SystemExit(1)

    role = "superuser" if superuser else "user"
    click.echo(f"✅ Created {role} {username}")
    click.echo(f"API token (shown once): {token}")


@user.command("rotate-token")
@click.argument("username")
@with_appcontext
def rotate_token(username):
    """Issue a fresh API token, invalidating the old one"""
    existing = User.query.filter_by(username=username).first()
    if existing is None:
        click.echo(f"❌ User {username} not found!")
        raise SystemExit(1)

    token = existing.generate_api_token()
    db.session.commit()
    click.echo(f"API token (shown once): {token}")


@user.command("list")
@with_appcontext
def list_users():
    """List all users"""
    users = User.query.order_by(User.username).all()
    if not users:
        click.echo("No users found.")
        return

    for u in users:
        flags = " [superuser]" if u.is_superuser else ""
        status = "" if u.is_active else " (inactive)"
        click.echo(f"  {u.id}: {u.username} <{u.email}>{flags}{status}")


# Pool Commands
@cli.group()
def pool():
    """Pool management commands"""
    pass


@pool.command("create")
@click.argument("name")
@click.option("--owner", "owner_name", required=True, help="Owner username")
@click.option("--year", type=int, help="Ceremony year (default POOL_YEAR)")
@click.option("--public", is_flag=True, help="List the pool publicly")
@with_appcontext
def create_pool(name, owner_name, year, public):
    """Create a pool; the owner joins it automatically"""
    owner = User.query.filter_by(username=owner_name).first()
    if owner is None:
        click.echo(f"❌ User {owner_name} not found!")
        raise SystemExit(1)

    new_pool = Pool(name=name, year=year or _default_year(), owner_id=owner.id, is_public=public)
    db.session.add(new_pool)
    db.session.flush()
    new_pool.add_member(owner)
    db.session.commit()
    click.echo(f"✅ Created pool {new_pool.id}: {name} ({new_pool.year})")


@pool.command("add-member")
@click.argument("pool_id", type=int)
@click.argument("username")
@click.option("--submission-name", help="Ballot name shown on the leaderboard")
@with_appcontext
def add_member(pool_id, username, submission_name):
    """Add a user to a pool"""
    target = db.session.get(Pool, pool_id)
    member = User.query.filter_by(username=username).first()
    if target is None or member is None:
        click.echo("❌ Pool or user not found!")
        raise SystemExit(1)

    success, message = target.add_member(member, submission_name=submission_name)
    if not success:
        click.echo(f"⚠️  {message}")
        return

    db.session.commit()
    click.echo(f"✅ {message}")


# Odds Commands
@cli.group()
def odds():
    """Market odds commands"""
    pass


@odds.command()
@click.option("--year", type=int, help="Ceremony year (default POOL_YEAR)")
@with_appcontext
def snapshot(year):
    """Record an odds snapshot now and upgrade stored prediction odds"""
    from awards_pool.services.odds_sync import OddsSync

    year = year or _default_year()
    stats = OddsSync().create_snapshots(year)
    click.echo(
        f"✅ {stats['snapshots']} snapshots across {stats['categories']} categories, "
        f"{stats['predictions_upgraded']} predictions upgraded, {stats['failed']} failed"
    )


@odds.command()
@click.option("--year", type=int, help="Ceremony year (default POOL_YEAR)")
@with_appcontext
def upgrade(year):
    """Re-apply best odds to stored predictions from existing snapshots"""
    year = year or _default_year()
    total_upgraded = 0
    total_checked = 0

    for category in Category.get_for_year(year):
        upgraded, checked = Prediction.upgrade_all_for_category(category)
        total_upgraded += upgraded
        total_checked += checked

    db.session.commit()
    click.echo(f"✅ Upgraded {total_upgraded} of {total_checked} predictions")


# Winner Commands
@cli.group()
def winner():
    """Winner commands"""
    pass


@winner.command("set")
@click.argument("year", type=int)
@click.argument("slug")
@click.argument("nominee_id", type=int)
@with_appcontext
def set_winner(year, slug, nominee_id):
    """Enter the real winner of a category"""
    category = Category.get_by_slug(slug, year)
    if category is None:
        click.echo(f"❌ Category {slug} ({year}) not found!")
        raise SystemExit(1)

    result, message = ActualWinner.set_winner(category, nominee_id)
    if result is None:
        click.echo(f"❌ {message}")
        raise SystemExit(1)

    db.session.commit()
    click.echo(f"✅ {message}: {category.name} -> {result.nominee.name}")


@winner.command()
@click.option("--year", type=int, help="Ceremony year (default POOL_YEAR)")
@with_appcontext
def detect(year):
    """Check settled markets for winners now"""
    from awards_pool.services.odds_sync import OddsSync

    try:
        stats = OddsSync().detect_winners(year or _default_year())
    except OddsFeedError as e:
        click.echo(f"❌ Market check failed: {e}")
        raise SystemExit(1)

    click.echo(f"✅ Checked {stats['checked']} categories, {stats['detected']} winners detected")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    year = _default_year()
    click.echo("🏆 Awards Pool Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    categories = Category.get_for_year(year)
    click.echo(f"🎬 Categories ({year}): {len(categories)}")

    announced = ActualWinner.query.filter_by(year=year).count()
    click.echo(f"🏅 Winners announced: {announced}/{len(categories)}")

    click.echo(f"👥 Active Users: {User.query.filter_by(is_active=True).count()}")
    click.echo(f"🗳️  Pools ({year}): {Pool.query.filter_by(year=year).count()}")
    click.echo(f"📈 Odds snapshots: {OddsSnapshot.query.count()}")

    lock_time = current_app.config.get("BALLOT_LOCK_AT")
    click.echo(f"🔒 Ballot lock: {lock_time.isoformat() if lock_time else 'not set'}")


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        cli()
