"""Global ballot lock: no prediction writes after the configured instant"""

from datetime import datetime, timezone

from flask import current_app

from awards_pool.utils.timezone_utils import format_display_time


def get_lock_time():
    return current_app.config.get("BALLOT_LOCK_AT")


def is_ballot_locked(now=None):
    lock_time = get_lock_time()
    if lock_time is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now >= lock_time


def lock_message():
    return f"Ballot submissions are locked as of {format_display_time(get_lock_time())}."
