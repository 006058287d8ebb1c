"""Text helpers shared by the feed normalizers."""

import re
import unicodedata

BR_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)


def normalize_line_breaks(text: str) -> str:
    """Turn the feed's ``<br/>`` markers and CRLFs into plain newlines."""
    text = BR_PATTERN.sub("\n", text)
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_lines(text: str) -> list[str]:
    """Split on line breaks and trim every line. Blank lines are kept."""
    return [line.strip() for line in normalize_line_breaks(text).split("\n")]


def collation_key(value: str) -> str:
    """
    Sort key for Korean-first lexical ordering.

    Precomposed Hangul syllables are laid out in dictionary (가나다) order, so
    NFC composition plus casefolding gives a stable, locale-independent
    equivalent of a ``ko`` collation for the labels found in the feed.
    """
    return unicodedata.normalize("NFC", value).casefold()
