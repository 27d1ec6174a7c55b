"""
In-memory filtering of post lists.
"""

import re

from loguru import logger

from postgate.models import Post

USER_ID_PATTERN = re.compile(r"[+-]?[0-9]+")
INT_MIN, INT_MAX = -(2**31), 2**31 - 1


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _parse_user_id(value: str) -> int | None:
    """Parse a signed 32-bit decimal integer; anything else is None."""
    if not USER_ID_PATTERN.fullmatch(value):
        return None
    number = int(value)
    if not INT_MIN <= number <= INT_MAX:
        return None
    return number


def filter_posts(
    posts: list[Post],
    user_id_filter: str | None = None,
    title_filter: str | None = None,
) -> list[Post]:
    """
    Filter posts by user id (exact) and title (case-insensitive substring).

    Blank filters are ignored. A user id that is not a plain 32-bit decimal
    integer (no whitespace, underscores or non-ASCII digits) matches
    nothing. Input order is preserved.
    """
    result = list(posts)

    if not _is_blank(user_id_filter):
        user_id = _parse_user_id(user_id_filter)
        if user_id is None:
            logger.warning(f"Invalid userId filter provided: {user_id_filter}")
            return []
        result = [post for post in result if post.user_id == user_id]

    if not _is_blank(title_filter):
        needle = title_filter.lower()
        result = [
            post
            for post in result
            if post.title is not None and needle in post.title.lower()
        ]

    return result
