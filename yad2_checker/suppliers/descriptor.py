"""Search descriptors: which feed to ask, and with what filters.

A configured source is a Yad2 search page URL, optionally prefixed with the
feed variant that should serve it:

    https://www.yad2.co.il/realestate/rent?topArea=2&city=5000&minRooms=3
    legacy+https://www.yad2.co.il/realestate/rent?city=5000&rooms=3-4
    html+https://www.yad2.co.il/realestate/rent?city=5000

The search page and the upstream APIs do not agree on parameter names
(`minRooms`/`maxRooms` against `rooms=3-4`), so the filters are read into a
SearchFilter first and written back out in whatever shape a variant needs.
"""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qsl, urlsplit

from yad2_checker.models import SearchFilter, SourceDescriptor

MARKERS = "markers"
LEGACY = "legacy"
HTML = "html"
KINDS = (MARKERS, LEGACY, HTML)

Query = list[tuple[str, str]]

_SINGLE = {
    "top_area": ("topArea", "top_area"),
    "area": ("area",),
    "city": ("city",),
    "neighborhood": ("neighborhood",),
}
_RANGES = {
    "rooms": (("minRooms", "rooms_min"), ("maxRooms", "rooms_max"), "rooms"),
    "price": (("minPrice", "price_min"), ("maxPrice", "price_max"), "price"),
}
_KNOWN = {name for names in _SINGLE.values() for name in names} | {
    name
    for low, high, combined in _RANGES.values()
    for name in (*low, *high, combined)
}

_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_RANGE = re.compile(r"(-1|\d+(?:\.\d+)?)?-(-1|\d+(?:\.\d+)?)?")


def parse_descriptor(raw: str) -> SourceDescriptor:
    text = raw.strip()
    kind = MARKERS
    prefix, sep, rest = text.partition("+")
    if sep and prefix in KINDS:
        kind, text = prefix, rest.strip()
    parts = urlsplit(text)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Not a search URL: {raw!r}")
    return SourceDescriptor(kind=kind, url=text, raw=raw)


def _bound(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return None if value in ("", "-1") else value


def split_range(text: str) -> tuple[Optional[str], Optional[str]]:
    """"3-4" -> ("3", "4"); "-1-6000" -> (None, "6000"); "3" -> ("3", "3")."""
    text = text.strip()
    if text in ("", "-1"):
        return None, None
    if _NUMBER.fullmatch(text):
        return text, text
    m = _RANGE.fullmatch(text)
    if not m:
        return None, None
    return _bound(m.group(1)), _bound(m.group(2))


def extract_filter(descriptor: SourceDescriptor) -> SearchFilter:
    pairs = parse_qsl(urlsplit(descriptor.url).query)
    first: dict[str, str] = {}
    for k, v in pairs:
        first.setdefault(k, v)

    def pick(names) -> Optional[str]:
        for name in names:
            value = _bound(first.get(name))
            if value is not None:
                return value
        return None

    fields: dict[str, Optional[str]] = {f: pick(names) for f, names in _SINGLE.items()}
    for f, (low_names, high_names, combined) in _RANGES.items():
        low, high = pick(low_names), pick(high_names)
        if low is None and high is None and combined in first:
            low, high = split_range(first[combined])
        fields[f"min_{f}"], fields[f"max_{f}"] = low, high

    extra = tuple((k, v) for k, v in pairs if k not in _KNOWN)
    return SearchFilter(extra=extra, **fields)


def deal_type(descriptor: SourceDescriptor) -> str:
    return "forsale" if "forsale" in urlsplit(descriptor.url).path else "rent"


def markers_query(f: SearchFilter) -> Query:
    """Parameter names of the current map API and of the search page."""
    named = [
        ("topArea", f.top_area),
        ("area", f.area),
        ("city", f.city),
        ("neighborhood", f.neighborhood),
        ("minRooms", f.min_rooms),
        ("maxRooms", f.max_rooms),
        ("minPrice", f.min_price),
        ("maxPrice", f.max_price),
    ]
    return [(k, v) for k, v in named if v is not None] + list(f.extra)


def _legacy_range(low: Optional[str], high: Optional[str]) -> Optional[str]:
    if low is None and high is None:
        return None
    return f"{low or '-1'}-{high or '-1'}"


def legacy_query(f: SearchFilter) -> Query:
    named = [
        ("topArea", f.top_area),
        ("area", f.area),
        ("city", f.city),
        ("neighborhood", f.neighborhood),
        ("rooms", _legacy_range(f.min_rooms, f.max_rooms)),
        ("price", _legacy_range(f.min_price, f.max_price)),
    ]
    return [(k, v) for k, v in named if v is not None] + list(f.extra)
