"""Tests for name, phone and slug normalization."""

from dav_manager.utils.normalization import (
    name_key,
    normalize_phone,
    order_and_dedupe_phones,
    slugify,
    split_csv,
)


class TestNameKey:
    """Test the name matching key."""

    def test_case_and_whitespace_ignored(self):
        """Names differing in case and surrounding spaces share a key."""
        assert name_key("  Jane DOE ") == name_key("jane doe")

    def test_inner_spaces_kept(self):
        """Inner whitespace is significant."""
        assert name_key("Jane  Doe") != name_key("Jane Doe")

    def test_empty_and_none(self):
        """Empty input gives an empty key."""
        assert name_key("") == ""
        assert name_key(None) == ""


class TestNormalizePhone:
    """Test phone canonicalization."""

    def test_ten_digits_assumed_indian(self):
        """A bare ten digit number gets the default country code."""
        assert normalize_phone("9876543210") == "+91 98765 43210"

    def test_trunk_zero_dropped(self):
        """A leading trunk 0 on eleven digits is removed."""
        assert normalize_phone("098765 43210") == "+91 98765 43210"

    def test_plus_zero_treated_as_trunk(self):
        """'+0' followed by ten digits is read as a local number."""
        assert normalize_phone("+09876543210") == "+91 98765 43210"

    def test_north_american_grouping(self):
        """+1 numbers are grouped 3-3-4."""
        assert normalize_phone("+1 (480) 395-7551") == "+1 480 395 7551"

    def test_indian_with_country_code(self):
        """+91 numbers are grouped 5-5."""
        assert normalize_phone("+91-98765-43210") == "+91 98765 43210"

    def test_other_lengths_kept_as_digits(self):
        """Unknown shapes collapse to '+' and digits."""
        assert normalize_phone("+44 20 7946 0958") == "+442079460958"

    def test_eleven_digits_without_plus_starting_with_one(self):
        """Eleven digits starting with 1 are North American."""
        assert normalize_phone("14155551212") == "+1 415 555 1212"

    def test_no_digits(self):
        """Text without digits normalizes to empty."""
        assert normalize_phone("n/a") == ""
        assert normalize_phone("+") == ""
        assert normalize_phone(None) == ""

    def test_idempotent(self):
        """Normalizing a normalized number changes nothing."""
        for raw in ("9876543210", "+1 480 395 7551", "+442079460958"):
            once = normalize_phone(raw)
            assert normalize_phone(once) == once


class TestOrderAndDedupePhones:
    """Test phone list ordering."""

    def test_international_first(self):
        """Non-default-country numbers come before +91 numbers."""
        phones = order_and_dedupe_phones(["9876543210", "+1 4803957551"])
        assert phones == ["+1 480 395 7551", "+91 98765 43210"]

    def test_duplicates_removed_after_normalization(self):
        """Different spellings of one number appear once."""
        phones = order_and_dedupe_phones(
            ["9876543210", "+91 98765 43210", "098765-43210"]
        )
        assert phones == ["+91 98765 43210"]

    def test_first_seen_order_within_group(self):
        """Each group keeps first-appearance order."""
        phones = order_and_dedupe_phones(
            ["+442079460958", "9000000001", "+1 4155551212", "9000000000"]
        )
        assert phones == [
            "+442079460958",
            "+1 415 555 1212",
            "+91 90000 00001",
            "+91 90000 00000",
        ]

    def test_empty_values_dropped(self):
        """Entries without digits are ignored."""
        assert order_and_dedupe_phones(["", "abc"]) == []


class TestSplitCsv:
    """Test comma separated cell splitting."""

    def test_trims_and_drops_empty(self):
        assert split_csv(" a@x.com , ,b@y.com ") == ["a@x.com", "b@y.com"]

    def test_blank(self):
        assert split_csv("   ") == []
        assert split_csv(None) == []


class TestSlugify:
    """Test archive file name slugs."""

    def test_basic(self):
        """Spaces become dashes, case is lowered."""
        assert slugify("Jane Doe") == "jane-doe"

    def test_disallowed_characters_stripped(self):
        """Punctuation is dropped and dashes are trimmed."""
        assert slugify(" Vendor X (2019)! ") == "vendor-x-2019"

    def test_fallback_for_empty(self):
        """A name with nothing usable gets a fixed slug."""
        assert slugify("???") == "unnamed"
        assert slugify(None) == "unnamed"
