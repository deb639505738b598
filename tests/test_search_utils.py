from utils.search import like_pattern, tokenize_query
from utils.slug import slugify
from utils.tags import parse_tag_names


def test_tokenize_query_splits_punctuation():
    assert tokenize_query("Dive-Physics: Boyle's LAW") == ["dive", "physics", "boyle's", "law"]


def test_tokenize_query_empty_tokens():
    assert tokenize_query("!!!") == []
    assert tokenize_query("   ") is None
    assert tokenize_query(None) is None


def test_like_pattern_escapes_wildcards():
    assert like_pattern("50%_off") == "%50\\%\\_off%"


def test_slugify():
    assert slugify("  Air Diver Certification! ") == "air-diver-certification"
    assert slugify("???", fallback="track") == "track"


def test_parse_tag_names_dedupes_and_normalizes():
    assert parse_tag_names("Gas, physics ,gas") == ["gas", "physics"]
    assert parse_tag_names(["Tables", "", "tables"]) == ["tables"]
