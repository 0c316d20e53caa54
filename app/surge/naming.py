"""Household display names and filesystem-safe packet filenames."""
from __future__ import annotations

import re

from app.db.models import Household

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_SLUG_MAX_LEN = 80

UNNAMED_HOUSEHOLD = "Unnamed_Household"


def slugify(value: str) -> str:
    slug = _SLUG_RE.sub("-", value.lower()).strip("-")
    return slug[:_SLUG_MAX_LEN]


def build_filename(household_name: str | None, surge_name: str | None, ext: str = "pdf") -> str:
    """Return ``<household>_<surge>.<ext>`` with both parts slugified.

    Empty parts are omitted; when nothing survives the result is
    ``packet.<ext>``.
    """
    parts = [slugify(p) for p in (household_name, surge_name) if p]
    stem = "_".join(p for p in parts if p)
    return f"{stem or 'packet'}.{ext}"


def display_name(household: Household, *, separator: str = "_", joiner: str = "&") -> str:
    """Human-readable household name built from its first two clients.

    One client gives ``Doe_John``; two clients sharing a last name give
    ``Doe_John&Jane``; otherwise ``Doe_John&Roe_Jane``.  Three or more
    clients fall back to the head of household.
    """
    clients = list(household.clients)
    if not clients:
        return household.name or UNNAMED_HOUSEHOLD

    first = clients[0]
    last1 = first.last_name or ""
    first1 = first.first_name or ""
    head = f"{last1}{separator}{first1}"

    if len(clients) != 2:
        return head

    second = clients[1]
    last2 = second.last_name or ""
    first2 = second.first_name or ""
    if last2.lower() == last1.lower():
        return f"{head}{joiner}{first2}"
    return f"{head}{joiner}{last2}{separator}{first2}"


def table_label(household: Household) -> str:
    """Display name in list form, e.g. ``Doe, John & Jane``."""
    return display_name(household, separator=", ", joiner=" & ")
