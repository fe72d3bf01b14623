"""Tests for visitor identity keys."""

import pytest

from visitor_insights_mcp.core.exceptions import MalformedIdentityKey
from visitor_insights_mcp.engine.identity import (
    DELIMITER,
    SEGMENT_COUNT,
    IdentityKey,
    StableIdentity,
    decode_identity_key,
    encode_identity_key,
    join_key,
    stable_key,
)


class TestEncodeIdentityKey:
    """Test identity key encoding."""

    def test_key_layout(self, identity):
        key = encode_identity_key(identity)

        segments = key.split(DELIMITER)
        assert len(segments) == SEGMENT_COUNT == 11
        assert segments[0] == "v2"
        assert segments[1] == "20240115"
        assert segments[2] == "14"
        assert segments[3] == "%2Fhome"
        assert segments[5] == "United%20States"
        assert segments[-1] == "0"

    def test_empty_optional_fields_use_sentinel(self, identity):
        key = encode_identity_key(
            IdentityKey(
                date=identity.date,
                hour=identity.hour,
                landing_page="",
                browser=identity.browser,
                country=identity.country,
                region="",
                city="",
                visitor_class=identity.visitor_class,
                referrer="",
                row_index=4,
            )
        )

        segments = key.split(DELIMITER)
        assert segments[3] == ""
        assert segments[6] == "none"
        assert segments[7] == "none"
        assert segments[9] == "none"

    def test_hour_is_zero_padded(self, identity):
        key = encode_identity_key(
            IdentityKey(**{**identity.__dict__, "hour": "5"})
        )

        assert key.split(DELIMITER)[2] == "05"

    def test_values_containing_delimiter_survive(self, identity):
        tricky = IdentityKey(
            date="20240115",
            hour="09",
            landing_page="/search?q=a|~|b&x=50%",
            browser="Chrome",
            country="United States",
            region="none",
            city="Saint-Jean|~|sur-Richelieu",
            visitor_class="new",
            referrer="news.example.com",
            row_index=12,
        )

        key = encode_identity_key(tricky)

        assert len(key.split(DELIMITER)) == SEGMENT_COUNT
        assert decode_identity_key(key) == tricky

    def test_empty_values_decode_to_empty(self, identity):
        sparse = IdentityKey(
            date="20240101",
            hour="00",
            landing_page="",
            browser="Safari",
            country="Canada",
            region="",
            city="",
            visitor_class="new",
            referrer="",
        )

        assert decode_identity_key(sparse.encode()) == sparse


class TestDecodeIdentityKey:
    """Test that malformed keys are rejected instead of guessed at."""

    def test_rejects_empty_key(self):
        with pytest.raises(MalformedIdentityKey, match="empty"):
            decode_identity_key("")

    def test_rejects_wrong_segment_count(self, identity):
        key = encode_identity_key(identity)
        truncated = DELIMITER.join(key.split(DELIMITER)[:-1])

        with pytest.raises(MalformedIdentityKey, match="expected 11 segments"):
            decode_identity_key(truncated)

    def test_rejects_unknown_version(self, identity):
        key = encode_identity_key(identity).replace("v2", "v1", 1)

        with pytest.raises(MalformedIdentityKey, match="version"):
            decode_identity_key(key)

    def test_rejects_legacy_pipe_keys(self):
        with pytest.raises(MalformedIdentityKey):
            decode_identity_key("20240115|14|/home|Chrome|US|CA|SF|new|google|0")

    @pytest.mark.parametrize(
        "index,value,reason",
        [
            (1, "2024-01-15", "invalid date"),
            (2, "24", "invalid hour"),
            (2, "xx", "invalid hour"),
            (1, "%D9%A2%D9%A0%D9%A2%D9%A4%D9%A0%D9%A1%D9%A1%D9%A5", "invalid date"),
            (2, "%C2%B2", "invalid hour"),
            (2, "\u0663", "invalid hour"),
            (10, "first", "invalid row index"),
            (10, "\u00b2", "invalid row index"),
            (10, "\u0663\u0663", "invalid row index"),
            (10, "-1", "invalid row index"),
        ],
    )
    def test_rejects_invalid_fields(self, identity, index, value, reason):
        segments = encode_identity_key(identity).split(DELIMITER)
        segments[index] = value

        with pytest.raises(MalformedIdentityKey, match=reason) as exc_info:
            decode_identity_key(DELIMITER.join(segments))

        assert exc_info.value.key == DELIMITER.join(segments)


class TestStableKey:
    """Test the stable identity subset."""

    def test_trailing_fields_do_not_affect_stable_key(self, identity):
        later = IdentityKey(
            **{
                **identity.__dict__,
                "date": "20240120",
                "hour": "08",
                "landing_page": "/pricing",
                "visitor_class": "new",
                "referrer": "bing",
                "row_index": 7,
            }
        )

        assert later.stable == identity.stable
        assert later.stable.key == identity.stable.key

    def test_stable_key_matches_join(self):
        identity = StableIdentity("Germany", "", "Berlin", "Firefox")

        assert identity.key == stable_key("Germany", "", "Berlin", "Firefox")
        assert identity.key == join_key("Germany", "", "Berlin", "Firefox")
        assert "none" in identity.key.split(DELIMITER)

    def test_literal_none_is_distinct_from_empty(self):
        assert stable_key("US", "none", "", "Chrome") != stable_key(
            "US", "", "", "Chrome"
        )
