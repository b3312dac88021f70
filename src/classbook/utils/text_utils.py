"""Text processing utilities.

Common text manipulation functions used across modules.
"""

import re
import unicodedata

_NEWLINES = re.compile(r"\r\n|\r|\n")


def fold_name(text: str) -> str:
    """Collation key for person names: no accents, case-folded.

    Args:
        text: Name as typed

    Returns:
        Key suitable for sorting, e.g. "Álvaro" -> "alvaro"
    """
    text = unicodedata.normalize("NFKD", text)
    text = "".join(c for c in text if not unicodedata.combining(c))
    return text.casefold().strip()


def collapse_newlines(text: str) -> str:
    """Replace embedded line breaks with single spaces."""
    return _NEWLINES.sub(" ", text)


def truncate(text: str, max_len: int, suffix: str = "...") -> str:
    """Cut text to max_len characters and append suffix if it was longer.

    The suffix is added after the cut, so the result may be up to
    max_len + len(suffix) characters.
    """
    if len(text) <= max_len:
        return text
    return text[:max_len] + suffix
