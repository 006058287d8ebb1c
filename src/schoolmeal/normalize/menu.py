"""Dish name cleaning for the feed's DDISH_NM field."""

import re

from schoolmeal.normalize.text import normalize_line_breaks

# Allergy codes and other annotations live inside any bracket pair
BRACKETED_SPAN = re.compile(r"\([^)]*\)|\[[^\]]*\]|\{[^}]*\}|<[^>]*>")

# "-u", ".u" or a bare "u" that is not the tail of a latin word
UNIT_SUFFIX = re.compile(r"(?:[-.]u|(?<![a-z])u)$", re.IGNORECASE)

COUNTER_SUFFIX = re.compile(r"[-~]\d+$")


def _clean_part(part: str) -> str:
    part = part.strip()
    part = UNIT_SUFFIX.sub("", part)
    part = COUNTER_SUFFIX.sub("", part)
    return part.strip()


def clean_menu_item(raw: str) -> str:
    """
    Clean one dish name.

    Examples:
        "쇠고기(알러지 1.2.5)" -> "쇠고기"
        "닭텐더/130ml-u" -> "닭텐더/130ml"
    """
    if not raw:
        return ""

    text = BRACKETED_SPAN.sub("", raw)
    return "/".join(_clean_part(part) for part in text.split("/")).strip()


def split_menu_items(raw_text: str | None) -> list[str]:
    """Split a raw DDISH_NM blob into cleaned, non-empty dish names."""
    if not raw_text:
        return []

    items = []
    for segment in normalize_line_breaks(raw_text).split("\n"):
        item = clean_menu_item(segment)
        if item:
            items.append(item)
    return items
