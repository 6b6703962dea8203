# === MODULE PURPOSE ===
# Tests for limit+1 pagination helpers.

from src.portfolio.pagination import DEFAULT_LIMIT, MAX_LIMIT, Page, normalize_page_args, paginate


class TestNormalizePageArgs:
    """Tests for normalize_page_args()."""

    def test_defaults(self):
        assert normalize_page_args(None, None) == (DEFAULT_LIMIT, 0)

    def test_valid_values_kept(self):
        assert normalize_page_args(25, 50) == (25, 50)
        assert normalize_page_args(MAX_LIMIT, 0) == (MAX_LIMIT, 0)

    def test_out_of_range_values_reset(self):
        assert normalize_page_args(0, -5) == (DEFAULT_LIMIT, 0)
        assert normalize_page_args(MAX_LIMIT + 1, 3) == (DEFAULT_LIMIT, 3)


class TestPaginate:
    """Tests for paginate()."""

    def test_extra_row_sets_has_more(self):
        """N+1 fetched rows -> N returned, has_more=True."""
        page = paginate([1, 2, 3, 4], limit=3, offset=0)

        assert page.items == [1, 2, 3]
        assert page.has_more is True

    def test_exact_rows_no_more(self):
        """Exactly N fetched rows -> has_more=False."""
        page = paginate([1, 2, 3], limit=3, offset=6)

        assert page.items == [1, 2, 3]
        assert page.has_more is False
        assert page.offset == 6

    def test_to_dict_envelope(self):
        page = Page(items=["a"], limit=1, offset=0, has_more=True)

        d = page.to_dict(item_to_dict=str.upper)

        assert d == {
            "entries": ["A"],
            "pagination": {"limit": 1, "offset": 0, "has_more": True},
        }
