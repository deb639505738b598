import re
import unicodedata

_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str, fallback: str = "item") -> str:
    """Lower-case ASCII slug with single dashes, e.g. 'Air Diver (L1)' -> 'air-diver-l1'."""
    if not value:
        return fallback
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = _NON_SLUG_RE.sub("-", ascii_value.lower()).strip("-")
    return slug or fallback
