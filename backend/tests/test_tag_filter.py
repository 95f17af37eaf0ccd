from __future__ import annotations

import pytest

from snapslock.core.tag_filter import PageWindow, normalize_tag_keys, slugify_tag, tally_full_matches


def test_slugify_tag() -> None:
    assert slugify_tag("  Sunset  Beach ") == "sunset-beach"
    assert slugify_tag("Mountains") == "mountains"
    assert slugify_tag("   ") == ""


def test_normalize_tag_keys_dedupes_and_drops_empty() -> None:
    assert normalize_tag_keys(["Sunset", "sunset", "", "  ", "Beach"]) == ["sunset", "beach"]
    assert normalize_tag_keys(None) == []


def test_tally_full_matches_requires_every_tag() -> None:
    rows = [("a", 1), ("a", 2), ("b", 1), ("c", 2), ("c", 3)]
    assert tally_full_matches(rows, [1, 2]) == {"a"}
    assert tally_full_matches(rows, [1]) == {"a", "b"}
    assert tally_full_matches(rows, [4]) == set()


def test_tally_full_matches_ignores_duplicate_and_foreign_rows() -> None:
    # "b" repeats tag 1 but never carries tag 2.
    rows = [("b", 1), ("b", 1), ("b", 9), ("a", 2), ("a", 1)]
    assert tally_full_matches(rows, [1, 2]) == {"a"}


def test_tally_full_matches_empty_required_set() -> None:
    assert tally_full_matches([("a", 1)], []) == set()


def test_tally_full_matches_is_subset_of_each_single_tag_match() -> None:
    rows = [(f"img{i}", t) for i in range(20) for t in (1, 2, 3) if (i + t) % 2 == 0 or i % 5 == 0]
    both = tally_full_matches(rows, [1, 2])
    assert both <= tally_full_matches(rows, [1])
    assert both <= tally_full_matches(rows, [2])


@pytest.mark.parametrize(
    ("page", "page_size", "total", "offset", "has_more"),
    [
        (1, 12, 13, 0, True),
        (2, 12, 13, 12, False),
        (1, 12, 12, 0, False),
        (1, 12, 0, 0, False),
        (3, 5, 16, 10, True),
    ],
)
def test_page_window(page: int, page_size: int, total: int, offset: int, has_more: bool) -> None:
    window = PageWindow(page=page, page_size=page_size)
    assert window.offset == offset
    assert window.limit == page_size
    assert window.has_more(total) is has_more


def test_page_window_rejects_non_positive() -> None:
    with pytest.raises(ValueError):
        PageWindow(page=0, page_size=12)
    with pytest.raises(ValueError):
        PageWindow(page=1, page_size=0)
