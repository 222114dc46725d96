"""Tests for capture identifiers."""

import pytest

from capture_bridge.schemas.identifiers import (
    ULID_ALPHABET,
    ULID_LENGTH,
    InvalidIdentifier,
    is_valid_capture_id,
    new_capture_id,
    timestamp_from_capture_id,
    validate_capture_id,
)

VALID_ID = "01HZX5K3M8Q9R2T4V6W8Y0ABCD"


class TestNewCaptureId:
    """Tests for ULID generation."""

    def test_format(self):
        """Generated ids are 26 uppercase Crockford characters."""
        capture_id = new_capture_id()
        assert len(capture_id) == ULID_LENGTH
        assert all(c in ULID_ALPHABET for c in capture_id)

    def test_generated_ids_validate(self):
        for _ in range(50):
            validate_capture_id(new_capture_id())

    def test_monotonic_within_same_millisecond(self):
        """Ids sharing a timestamp still sort in generation order."""
        ids = [new_capture_id(timestamp_ms=1_700_000_000_000) for _ in range(100)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 100

    def test_sorts_by_time(self):
        earlier = new_capture_id(timestamp_ms=1_700_000_000_000)
        later = new_capture_id(timestamp_ms=1_700_000_000_001)
        assert earlier < later

    def test_timestamp_round_trip(self):
        capture_id = new_capture_id(timestamp_ms=1_712_345_678_901)
        assert timestamp_from_capture_id(capture_id) == 1_712_345_678_901


class TestValidateCaptureId:
    """The id is the only gate before a vault path is built."""

    def test_accepts_valid_id(self):
        assert validate_capture_id(VALID_ID) == VALID_ID

    @pytest.mark.parametrize(
        "value",
        [
            "../../etc/passwd",
            "/etc/passwd",
            "C:\\Windows\\system32",
            "01HZX5K3M8Q9R2T4V6W8Y0ABC/",
            "01HZX5K3M8Q9R2T4V6W8Y0AB..",
            "01HZX5K3M8Q9R2T4V6W8Y0ABC\x00",
            "..",
            "",
        ],
    )
    def test_rejects_path_like_values(self, value):
        with pytest.raises(InvalidIdentifier):
            validate_capture_id(value)

    def test_rejects_wrong_length(self):
        with pytest.raises(InvalidIdentifier, match="26 characters"):
            validate_capture_id(VALID_ID[:-1])
        with pytest.raises(InvalidIdentifier):
            validate_capture_id(VALID_ID + "0")

    def test_rejects_lowercase(self):
        with pytest.raises(InvalidIdentifier):
            validate_capture_id(VALID_ID.lower())

    @pytest.mark.parametrize("letter", ["I", "L", "O", "U"])
    def test_rejects_excluded_letters(self, letter):
        with pytest.raises(InvalidIdentifier):
            validate_capture_id(VALID_ID[:-1] + letter)

    def test_rejects_non_string(self):
        with pytest.raises(InvalidIdentifier, match="string"):
            validate_capture_id(12345)

    def test_invalid_identifier_is_value_error(self):
        with pytest.raises(ValueError):
            validate_capture_id("nope")

    def test_is_valid_capture_id(self):
        assert is_valid_capture_id(VALID_ID)
        assert not is_valid_capture_id("../x")
        assert not is_valid_capture_id(None)
