"""Identity keys for reconstructed visitors.

The analytics source exposes no visitor identifier, so visitors are
inferred from a stable subset of dimensions (country, region, city,
browser). The public identity key also carries the most recently observed
date, hour, landing page, referrer, visitor class and row index so that a
single visitor can be expanded later; those trailing fields are not part
of the grouping.

Keys are versioned. Every segment is percent-encoded, so no value can
contain the three-character delimiter, and decoding validates the segment
count instead of guessing at a partial identity.
"""

import re
from dataclasses import dataclass, replace
from urllib.parse import quote, unquote

from visitor_insights_mcp.core.exceptions import MalformedIdentityKey

KEY_VERSION = "v2"
DELIMITER = "|~|"
NONE_SENTINEL = "none"
# A literal "none" value is escaped so it cannot be read back as the sentinel
_ESCAPED_NONE = "%6Eone"

_KEY_FIELDS = (
    "date",
    "hour",
    "landing_page",
    "browser",
    "country",
    "region",
    "city",
    "visitor_class",
    "referrer",
    "row_index",
)
SEGMENT_COUNT = len(_KEY_FIELDS) + 1

_DATE_PATTERN = re.compile(r"[0-9]{8}")
_ASCII_DIGITS = re.compile(r"[0-9]+")


def normalize_hour(hour: str) -> str:
    """Zero-pad an hour value so it sorts lexicographically."""
    return hour.zfill(2) if _ASCII_DIGITS.fullmatch(hour) else hour


def recency_stamp(date: str, hour: str) -> str:
    """Comparable ``date ++ zero-padded hour`` stamp used for most-recent-wins."""
    return f"{date}{normalize_hour(hour)}"


def _encode(value: str) -> str:
    return quote(value, safe="")


def _encode_optional(value: str) -> str:
    if not value:
        return NONE_SENTINEL
    encoded = _encode(value)
    return _ESCAPED_NONE if encoded == NONE_SENTINEL else encoded


def _decode_optional(segment: str) -> str:
    return "" if segment == NONE_SENTINEL else unquote(segment)


def join_key(*values: str) -> str:
    """Deterministically join grouping values; empty values become the sentinel."""
    return DELIMITER.join(_encode_optional(value) for value in values)


def stable_key(country: str, region: str, city: str, browser: str) -> str:
    """Grouping key for the stable identity subset."""
    return join_key(country, region, city, browser)


@dataclass(frozen=True)
class StableIdentity:
    """The dimension subset assumed to identify one visitor."""

    country: str
    region: str
    city: str
    browser: str

    @property
    def key(self) -> str:
        return stable_key(self.country, self.region, self.city, self.browser)


@dataclass(frozen=True)
class IdentityKey:
    """Stable identity plus the disambiguating fields of the latest row."""

    date: str
    hour: str
    landing_page: str
    browser: str
    country: str
    region: str
    city: str
    visitor_class: str
    referrer: str
    row_index: int = 0

    @property
    def stable(self) -> StableIdentity:
        return StableIdentity(self.country, self.region, self.city, self.browser)

    @property
    def recency(self) -> str:
        return recency_stamp(self.date, self.hour)

    def with_landing_page(self, landing_page: str) -> "IdentityKey":
        return replace(self, landing_page=landing_page)

    def encode(self) -> str:
        return encode_identity_key(self)


def encode_identity_key(identity: IdentityKey) -> str:
    """Encode an identity key into an opaque, transport-safe string."""
    segments = [
        KEY_VERSION,
        _encode(identity.date),
        _encode(normalize_hour(identity.hour)),
        _encode(identity.landing_page),
        _encode(identity.browser),
        _encode(identity.country),
        _encode_optional(identity.region),
        _encode_optional(identity.city),
        _encode(identity.visitor_class),
        _encode_optional(identity.referrer),
        str(identity.row_index),
    ]
    return DELIMITER.join(segments)


def decode_identity_key(key: str) -> IdentityKey:
    """Decode a key produced by :func:`encode_identity_key`.

    Raises:
        MalformedIdentityKey: If the key has the wrong version or segment
            count, or carries an invalid date, hour or row index
    """
    if not key:
        raise MalformedIdentityKey(key, "key is empty")

    segments = key.split(DELIMITER)
    if len(segments) != SEGMENT_COUNT:
        raise MalformedIdentityKey(
            key, f"expected {SEGMENT_COUNT} segments, got {len(segments)}"
        )

    version, *fields = segments
    if version != KEY_VERSION:
        raise MalformedIdentityKey(key, f"unsupported key version '{version}'")

    (
        date,
        hour,
        landing_page,
        browser,
        country,
        region,
        city,
        visitor_class,
        referrer,
        row_index,
    ) = fields

    date = unquote(date)
    if not _DATE_PATTERN.fullmatch(date):
        raise MalformedIdentityKey(key, f"invalid date '{date}'")

    hour = unquote(hour)
    if not _ASCII_DIGITS.fullmatch(hour) or not 0 <= int(hour) <= 23:
        raise MalformedIdentityKey(key, f"invalid hour '{hour}'")

    if not _ASCII_DIGITS.fullmatch(row_index):
        raise MalformedIdentityKey(key, f"invalid row index '{row_index}'")

    return IdentityKey(
        date=date,
        hour=hour,
        landing_page=unquote(landing_page),
        browser=unquote(browser),
        country=unquote(country),
        region=_decode_optional(region),
        city=_decode_optional(city),
        visitor_class=unquote(visitor_class),
        referrer=_decode_optional(referrer),
        row_index=int(row_index),
    )
