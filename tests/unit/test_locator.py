"""
Unit tests for content locator encoding.
"""

import pytest

from crypto.exceptions import CryptoError, LocatorError
from crypto.locator import (
    MAX_CONTENT_ID,
    decode_locator,
    encode_locator,
    is_valid_locator,
    normalize_locator,
)


GOLDEN_ID = 26318712447309950621133794408605739963587829295802287350894110878892617743117
GOLDEN_LOCATOR = "DbuJ7GRmwjoqo1LDp2qk/H/aI1ycOi2lH3Ka4ATdLzo="


class TestLocatorEncoding:
    """Test locator encode/decode."""

    def test_golden_encode(self):
        """Test encoding of a known identifier."""
        assert encode_locator(GOLDEN_ID) == GOLDEN_LOCATOR

    def test_golden_decode(self):
        """Test decoding of a known locator."""
        assert decode_locator(GOLDEN_LOCATOR) == GOLDEN_ID

    def test_canonical_length(self):
        """Test that canonical locators are 44 characters."""
        assert len(encode_locator(0)) == 44
        assert len(encode_locator(MAX_CONTENT_ID)) == 44

    def test_little_endian_layout(self):
        """Test byte order of the identifier."""
        # 1 in the lowest byte: first base64 sextets carry it
        assert encode_locator(1).startswith("AQAA")
        assert encode_locator(1 << 248).endswith("AAE=")

    def test_extremes(self):
        """Test the bounds of the identifier range."""
        assert decode_locator(encode_locator(0)) == 0
        assert decode_locator(encode_locator(MAX_CONTENT_ID)) == MAX_CONTENT_ID

    def test_url_safe_unpadded(self):
        """Test the URL-safe unpadded form."""
        text = encode_locator(GOLDEN_ID, url_safe=True, padded=False)

        assert text == "DbuJ7GRmwjoqo1LDp2qk_H_aI1ycOi2lH3Ka4ATdLzo"
        assert decode_locator(text) == GOLDEN_ID

    def test_unpadded_standard(self):
        """Test decoding without padding."""
        assert decode_locator(GOLDEN_LOCATOR.rstrip("=")) == GOLDEN_ID

    def test_normalize(self):
        """Test normalisation to the canonical form."""
        assert normalize_locator("DbuJ7GRmwjoqo1LDp2qk_H_aI1ycOi2lH3Ka4ATdLzo") == GOLDEN_LOCATOR

    def test_out_of_range(self):
        """Test identifiers outside 256 bits."""
        with pytest.raises(LocatorError):
            encode_locator(-1)

        with pytest.raises(LocatorError):
            encode_locator(MAX_CONTENT_ID + 1)

    def test_non_integer(self):
        """Test non-integer identifiers."""
        with pytest.raises(LocatorError):
            encode_locator("1")

        with pytest.raises(LocatorError):
            encode_locator(True)


class TestLocatorDecodingErrors:
    """Test malformed locators."""

    @pytest.mark.parametrize("locator", [
        "",
        "   ",
        "not base64!",
        "AQID",                         # 3 bytes
        GOLDEN_LOCATOR[:-4],            # too short
        GOLDEN_LOCATOR + "AAAA",        # too long
    ])
    def test_malformed(self, locator):
        """Test that malformed locators are rejected."""
        with pytest.raises(LocatorError):
            decode_locator(locator)

        assert not is_valid_locator(locator)

    def test_non_string(self):
        """Test non-string locators."""
        with pytest.raises(LocatorError):
            decode_locator(None)

    def test_error_hierarchy(self):
        """Test exception hierarchy."""
        assert issubclass(LocatorError, CryptoError)

    def test_valid(self):
        """Test a valid locator check."""
        assert is_valid_locator(GOLDEN_LOCATOR)
