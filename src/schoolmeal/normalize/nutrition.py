"""Nutrient note (NTR_INFO) normalization."""

import re
from dataclasses import dataclass
from typing import Any

from schoolmeal.normalize.text import split_lines

HEADLINE_NUTRIENTS: tuple[str, ...] = ("탄수화물", "단백질", "지방")

LINE_PATTERN = re.compile(r"^(.+?)\s*[:：]\s*(.+)$")
UNIT_PATTERN = re.compile(r"\(([^)]+)\)")
UNIT_SPAN = re.compile(r"\s*\([^)]*\)\s*")
NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")


@dataclass
class NutrientEntry:
    """One parsed ``name(unit) : value`` line."""

    name: str
    value: float
    unit: str
    is_headline: bool

    @property
    def display_value(self) -> str:
        if self.value == int(self.value):
            return str(int(self.value))
        return repr(self.value)

    def to_line(self) -> str:
        if self.unit:
            return f"{self.name} : {self.display_value}({self.unit})"
        return f"{self.name} : {self.display_value}"


def parse_nutrient_line(line: str) -> NutrientEntry | None:
    """Parse ``탄수화물(g) : 73.6`` style lines. Returns None without a separator."""
    match = LINE_PATTERN.match(line.strip())
    if not match:
        return None

    label, value_text = match.group(1).strip(), match.group(2).strip()

    unit = ""
    name = label
    unit_match = UNIT_PATTERN.search(label)
    if unit_match:
        unit = unit_match.group(1).strip()
        name = UNIT_SPAN.sub("", label, count=1).strip()

    number = NUMBER_PATTERN.search(value_text.replace(",", ""))
    value = float(number.group(0)) if number else 0.0

    return NutrientEntry(
        name=name,
        value=value,
        unit=unit,
        is_headline=name in HEADLINE_NUTRIENTS,
    )


def normalize_nutrition(raw: Any) -> str:
    """
    Normalize raw nutrient notes.

    Headline macros come first in fixed order, then the rest by descending
    value, separated by one blank line.
    """
    if not raw:
        return ""
    if not isinstance(raw, str):
        raw = str(raw)

    entries = [
        entry
        for line in split_lines(raw)
        if line and (entry := parse_nutrient_line(line)) is not None
    ]

    headline = sorted(
        (e for e in entries if e.is_headline),
        key=lambda e: HEADLINE_NUTRIENTS.index(e.name),
    )
    others = sorted((e for e in entries if not e.is_headline), key=lambda e: -e.value)

    blocks = []
    if headline:
        blocks.append("\n".join(e.to_line() for e in headline))
    if others:
        blocks.append("\n".join(e.to_line() for e in others))

    return "\n\n".join(blocks).rstrip()
