"""Origin note (ORPLC_INFO) normalization.

Raw notes look like::

    쇠고기(종류) : 국내산(한우)<br/>돼지고기 : 국내산<br/>쌀 : 수입산(미국, 중국 등)

and are folded into one line per origin, domestic first::

    domestic : 돼지고기, 쇠고기
    미국 : 쌀
    중국 : 쌀
"""

import json
import re
from typing import Any

from schoolmeal.logging_config import get_logger
from schoolmeal.normalize.text import collation_key, split_lines

logger = get_logger(__name__)


# =============================================================================
# Rule Table
# =============================================================================

SEPARATOR = " : "

DOMESTIC_GROUP = "domestic"
DOMESTIC_LABELS = frozenset({"국내산", "국산", DOMESTIC_GROUP})
FALLBACK_HEADER = "원산지"

REMARKS_PREFIX = "비고"
PROCESSED_MARKERS = ("수산가공품", "식육가공품")

BEEF = "쇠고기"
BEEF_TYPE_LABEL = "쇠고기(종류)"
PREMIUM_BEEF = "한우"
TYPE_MARKER = "(종류)"

# Origins too generic to be worth a group of their own
GENERIC_IMPORT_LABELS = frozenset({"수입산", "외국산"})

FILLER_WORDS = frozenset({"외", "등"})
TRAILING_FILLER = re.compile(r"\s*(?:외|등)$")

PARENTHESIZED = re.compile(r"\(([^)]*)\)")
ANY_PARENTHETICAL = re.compile(r"\([^)]*\)")

# Applied in order to the ingredient name
INGREDIENT_STRIP_PATTERNS = (
    re.compile(r"\s*식육가공품$"),
    re.compile(r"\s*가공품$"),
    re.compile(r"식육"),
    re.compile(r"수산"),
    re.compile(r"고기$"),
)

EMPTY_LITERALS = frozenset({"", "[]", "{}", "null"})


# =============================================================================
# Parsing Helpers
# =============================================================================


def _coerce_text(raw: Any) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)):
        if not raw:
            return None
        return "\n".join(str(item) for item in raw)
    if not isinstance(raw, str):
        raw = json.dumps(raw, ensure_ascii=False)
    if raw.strip() in EMPTY_LITERALS:
        return None
    return raw


def _is_usable_line(line: str) -> bool:
    return (
        bool(line)
        and not line.startswith(REMARKS_PREFIX)
        and SEPARATOR in line
        and not any(marker in line for marker in PROCESSED_MARKERS)
    )


def _mentions_domestic_beef(line: str) -> bool:
    return (
        PREMIUM_BEEF in line
        or BEEF_TYPE_LABEL in line
        or (BEEF in line and any(label in line for label in ("국내산", "국산")))
    )


def _strip_filler(text: str) -> str:
    return TRAILING_FILLER.sub("", text.strip()).strip()


def _clean_ingredient(ingredient: str) -> str:
    for pattern in INGREDIENT_STRIP_PATTERNS:
        ingredient = pattern.sub("", ingredient)
    return ingredient.strip()


class OriginGroups:
    """Origin label -> set of ingredient names."""

    def __init__(self) -> None:
        self._groups: dict[str, set[str]] = {}

    def add(self, origin: str, ingredient: str) -> None:
        if not origin or not ingredient:
            return
        self._groups.setdefault(origin, set()).add(ingredient)

    def add_domestic(self, ingredient: str) -> None:
        self.add(DOMESTIC_GROUP, ingredient)

    def is_empty(self) -> bool:
        return not any(self._groups.values())

    def serialize(self) -> str:
        lines = []

        domestic = self._groups.get(DOMESTIC_GROUP)
        if domestic:
            lines.append(
                f"{DOMESTIC_GROUP}{SEPARATOR}{', '.join(sorted(domestic, key=collation_key))}"
            )

        others = sorted(
            (origin for origin in self._groups if origin != DOMESTIC_GROUP),
            key=collation_key,
        )
        for origin in others:
            ingredients = self._groups[origin]
            if ingredients:
                lines.append(
                    f"{origin}{SEPARATOR}{', '.join(sorted(ingredients, key=collation_key))}"
                )

        return "\n".join(lines).rstrip()


def _add_line(groups: OriginGroups, line: str) -> None:
    ingredient, origin = (part.strip() for part in line.split(SEPARATOR, 1))

    if origin in DOMESTIC_LABELS:
        groups.add_domestic(ingredient)
        return

    bracket = PARENTHESIZED.search(origin)
    if bracket:
        country_text = _strip_filler(bracket.group(1))
        if "," in country_text:
            for country in (_strip_filler(token) for token in country_text.split(",")):
                if country and country not in FILLER_WORDS:
                    groups.add(country, ingredient)
            return
        if country_text and country_text not in FILLER_WORDS:
            groups.add(country_text, ingredient)
            return

    origin = ANY_PARENTHETICAL.sub("", origin).strip()
    if origin in GENERIC_IMPORT_LABELS:
        return

    ingredient = _clean_ingredient(ingredient)
    if TYPE_MARKER in ingredient:
        ingredient = ingredient.replace(TYPE_MARKER, "").strip()
        if ingredient == BEEF or PREMIUM_BEEF in ingredient:
            groups.add_domestic(BEEF)
            return

    if origin in DOMESTIC_LABELS:
        groups.add_domestic(ingredient)
    else:
        groups.add(origin, ingredient)


# =============================================================================
# Entry Point
# =============================================================================


def normalize_origin(raw: Any) -> str | None:
    """
    Normalize raw origin notes into ``origin : ingredient, ...`` lines.

    Returns None when the input carries nothing usable.
    """
    text = _coerce_text(raw)
    if text is None:
        return None

    all_lines = split_lines(text)
    usable = [line for line in all_lines if _is_usable_line(line)]

    groups = OriginGroups()
    if any(_mentions_domestic_beef(line) for line in all_lines):
        groups.add_domestic(BEEF)
        usable_generic = [line for line in usable if not _mentions_domestic_beef(line)]
    else:
        usable_generic = usable

    for line in usable_generic:
        _add_line(groups, line)

    if not groups.is_empty():
        return groups.serialize()

    if usable:
        logger.debug(f"No origin group survived normalization, keeping {len(usable)} raw lines")
        return "\n".join([FALLBACK_HEADER, *usable]).rstrip()

    return None
