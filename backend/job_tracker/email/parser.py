"""Helpers for turning ingested email fields into tracker data."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import Iterable, Optional

from bs4 import BeautifulSoup

SNIPPET_MAX_CHARS = 200


def company_from_sender(address: Optional[str]) -> Optional[str]:
    """Guess a company name from the sender's domain.

    Examples:
        "user@airbnb.com"              -> "airbnb"
        "Talent <jobs@Stripe.com>"     -> "stripe"
        "no-at-sign"                   -> None
    """
    if not address or "@" not in address:
        return None

    _, parsed = parseaddr(address)
    addr = parsed if "@" in parsed else address
    domain = addr.rpartition("@")[2].strip().strip(">").lower()
    label = domain.split(".")[0].strip()
    return label or None


def html_to_text(html: str) -> str:
    """Strip HTML tags and return readable text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text("\n", strip=True)


def build_snippet(body_text: Optional[str], body_html: Optional[str]) -> Optional[str]:
    """Derive a short preview from the body when the provider sent none."""
    text = body_text or (html_to_text(body_html) if body_html else "")
    text = re.sub(r"\s+", " ", text).strip()
    if not text:
        return None
    if len(text) <= SNIPPET_MAX_CHARS:
        return text
    return text[: SNIPPET_MAX_CHARS - 1].rstrip() + "…"


def join_addresses(addresses: Optional[Iterable[str]]) -> Optional[str]:
    """Store recipient lists comma-joined; None when the list was not sent."""
    if addresses is None:
        return None
    return ",".join(a.strip() for a in addresses if a and a.strip())


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
