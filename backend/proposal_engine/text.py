from __future__ import annotations

import html
import re

_NON_ALNUM_PATTERN = re.compile(r"[\W_]+")
_WP_INDEX_PATTERN = re.compile(
    r"(?<![a-z0-9])(?:work[\s_-]*packages?|wp)[\s_-]*(?:n\s*°|n\s*o\.?|nr\.?|#|number)?[\s_.-]*(\d{1,3})(?!\d)",
    flags=re.IGNORECASE,
)
_WP_PLACEHOLDER_TITLE_PATTERN = re.compile(
    r"^\s*(?:work\s*package|wp)\s*(?:n\s*°|no\.?|#)?\s*\d+\s*:?\s*$",
    flags=re.IGNORECASE,
)
_WP_PREFIX_RUN_PATTERN = re.compile(r"^(?:WP\d+[:\s]+)+", flags=re.IGNORECASE)
_TAG_PATTERN = re.compile(r"</?[A-Za-z!][^<>]*>")
_KEY_SEPARATOR_PATTERN = re.compile(r"[_\-.]+")


def normalize_label(value: str | None) -> str:
    """Lowercase and drop everything that is not a letter or digit.

    >>> normalize_label("Budget & Cost Estimation")
    'budgetcostestimation'
    """
    return _NON_ALNUM_PATTERN.sub("", (value or "").lower())


def extract_wp_index(value: str | None) -> int | None:
    """Return the zero-based work package index named in a key or label.

    Only explicit work package tokens count: ``"Work package n°2"``, ``"WP 2"``,
    ``"wp2"`` and ``"work_package_2"`` all give ``1``; ``"Activities (2)"`` gives
    ``None``.
    """
    if not value:
        return None
    match = _WP_INDEX_PATTERN.search(value)
    if not match:
        return None
    number = int(match.group(1))
    if number < 1:
        return None
    return number - 1


def is_wp_placeholder_title(value: str | None) -> bool:
    return bool(value) and bool(_WP_PLACEHOLDER_TITLE_PATTERN.match(value or ""))


def clean_title(value: str | None) -> str:
    if not value:
        return ""
    title = re.sub(r"undefined", "", value, flags=re.IGNORECASE)
    title = re.sub(r"-\s*null\b", "", title, flags=re.IGNORECASE)
    title = re.sub(r"\(?\s*\bnull\b\s*\)?", "", title, flags=re.IGNORECASE)
    title = title.replace("_", " ")
    title = " ".join(title.split())

    def _collapse_prefix(match: re.Match[str]) -> str:
        first = re.match(r"WP\d+", match.group(0), flags=re.IGNORECASE)
        return f"{first.group(0).upper()}: " if first else ""

    title = _WP_PREFIX_RUN_PATTERN.sub(_collapse_prefix, title).strip()
    if not title:
        return ""
    return title[0].upper() + title[1:]


def humanize_key(key: str) -> str:
    """Turn a content key such as ``"needs_analysis"`` into ``"Needs analysis"``."""
    spaced = " ".join(_KEY_SEPARATOR_PATTERN.sub(" ", key).split())
    return clean_title(spaced) or key.strip() or "Untitled section"


def strip_tags(value: str) -> str:
    return html.unescape(_TAG_PATTERN.sub(" ", value)).replace("\xa0", " ")


def content_fingerprint(value: str | None) -> str:
    """Tag-free, whitespace-collapsed, lowercased text used for duplicate checks."""
    if not value:
        return ""
    return " ".join(strip_tags(value).split()).lower()


def content_length(value: str | None) -> int:
    return len(content_fingerprint(value))


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", value.lower()).strip("_")
    return slug
