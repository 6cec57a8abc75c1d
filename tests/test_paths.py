import pytest

from metawatch.paths import join_path, prefix_range_end


def test_join_two_elements():
    assert join_path("a", "b") == "a/b"


def test_join_keeps_trailing_slash_of_last_element():
    assert join_path("a", "b/") == join_path("a", "b") + "/"
    assert join_path("a/", "b").endswith("b")


def test_join_of_nothing_is_empty():
    assert not join_path()
    assert not join_path("", "")


def test_join_skips_empty_elements():
    assert join_path("", "a", "", "b") == join_path("a", "b")


def test_join_cleans_redundant_parts():
    assert join_path("a//b", "./c") == join_path("a", "b", "c")
    assert join_path("a", "..", "b") == "b"


def test_join_rooted_path_stays_rooted():
    assert join_path("/", "x").startswith("/")
    assert join_path("/..", "x") == join_path("/", "x")


def test_join_single_element_is_cleaned_copy():
    assert join_path("by-dev") == "by-dev"


def test_prefix_range_end_increments_last_byte():
    assert prefix_range_end(b"abc") == b"abd"


def test_prefix_range_end_accepts_text():
    assert prefix_range_end("abc") == prefix_range_end(b"abc")


def test_prefix_range_end_skips_saturated_bytes():
    assert prefix_range_end(b"a\xff") == b"b"


@pytest.mark.parametrize("prefix", [b"a", b"by-dev/meta", b"x\xff\xff", b"\x00"])
def test_prefix_range_end_bounds_every_prefixed_key(prefix):
    end = prefix_range_end(prefix)
    assert prefix < end
    assert prefix + b"\xff\xff\xff" < end
    assert not end.startswith(prefix)