"""Ballot labels for pool members who never named their submission"""

from datetime import datetime, timezone


def _joined_sort_key(member):
    joined_at = member.joined_at
    if joined_at is None:
        joined_at = datetime.min
    if joined_at.tzinfo is not None:
        joined_at = joined_at.astimezone(timezone.utc).replace(tzinfo=None)
    return (joined_at, str(member.user_id))


def build_fallback_name_map(members, label="Ballot"):
    """
    Number members by join order ("Ballot #1", "Ballot #2", ...).

    Args:
        members: Iterable of objects with user_id and joined_at
        label: Prefix for the generated names

    Returns:
        dict: user_id -> fallback name
    """
    ordered = sorted(members, key=_joined_sort_key)
    return {
        member.user_id: f"{label} #{index}"
        for index, member in enumerate(ordered, start=1)
    }


def resolve_submission_name(submission_name, fallback_name):
    trimmed = submission_name.strip() if submission_name else ""
    return trimmed or fallback_name
