"""URL-safe document and category slugs."""

from __future__ import annotations

import re
from collections.abc import Callable

MAX_SLUG_LENGTH = 120

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def generate_slug(title: str) -> str:
    """Lowercase ``title`` and collapse every non-alphanumeric run to ``-``.

    >>> generate_slug("Billing & Invoices!")
    'billing-invoices'
    """
    slug = _NON_ALNUM.sub("-", title.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def ensure_unique_slug(slug: str, exists: Callable[[str], bool]) -> str:
    """Return ``slug``, or the first of ``slug-2``, ``slug-3``, ... that is free.

    Args:
        slug: Preferred slug.
        exists: Predicate telling whether a slug is already taken.
    """
    if not exists(slug):
        return slug
    counter = 2
    while exists(f"{slug}-{counter}"):
        counter += 1
    return f"{slug}-{counter}"
