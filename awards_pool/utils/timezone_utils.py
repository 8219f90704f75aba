"""
Timezone utility functions for the Awards Pool application
"""

from datetime import datetime, timezone

import pytz
from flask import current_app


def get_app_timezone():
    """Get the application's configured display timezone"""
    try:
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def convert_to_app_timezone(dt):
    """Convert a datetime to the application's timezone"""
    if dt is None:
        return None

    app_tz = get_app_timezone()

    # Database values come back naive; they are stored in UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(app_tz)


def parse_timestamp(value):
    """
    Parse an ISO-8601 timestamp from a request.

    Naive values are taken as UTC. Returns None when value is not a timestamp.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_display_time(dt, format_str="%B %d, %Y at %I:%M %p %Z"):
    """Format a timestamp in the application's timezone"""
    if dt is None:
        return "TBD"

    return convert_to_app_timezone(dt).strftime(format_str)
