# Provider interfaces and dataclasses.
# poifinder/providers/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

# Keys of a provider POI entry that map onto PoiRecord attributes.
_MODELED_FIELDS = (
    "id",
    "name",
    "type",
    "typecode",
    "biz_type",
    "address",
    "location",
    "tel",
    "distance",
    "business_area",
    "navi_poiid",
    "pcode",
    "adcode",
    "pname",
    "cityname",
)


def _as_text(value: Any) -> str:
    # AMap sends [] instead of "" for missing string fields
    if value is None:
        return ""
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    return str(value)


def parse_location(location: str) -> Tuple[Optional[float], Optional[float]]:
    """Parse an AMap "lng,lat" string. Returns (None, None) when unparsable."""
    parts = (location or "").split(",")
    if len(parts) < 2:
        return None, None
    try:
        return float(parts[0].strip()), float(parts[1].strip())
    except ValueError:
        return None, None


@dataclass(frozen=True)
class DelayWindow:
    """Random pacing applied before each page request, in milliseconds."""
    min_ms: int = 0
    max_ms: int = 0

    @property
    def enabled(self) -> bool:
        return self.min_ms > 0 or self.max_ms > 0


@dataclass(frozen=True)
class RetryPolicy:
    # count is the total number of attempts, first try included
    count: int = 3
    base_delay_ms: int = 1000

    def __post_init__(self):
        if self.count < 1:
            raise ValueError("RetryPolicy.count must be >= 1")


@dataclass(frozen=True)
class SearchQuery:
    keyword: str
    region: str
    page_num: int = 1
    page_size: int = 25
    key: Optional[str] = None
    delay: DelayWindow = DelayWindow()
    retry: RetryPolicy = RetryPolicy()

    def __post_init__(self):
        if self.page_num < 1:
            raise ValueError("page_num must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")


@dataclass(frozen=True)
class PoiRecord:
    """
    One POI as returned by the provider.
    `extra` keeps every provider field that is not modelled here so that
    `to_payload()` can give back the provider-shaped entry.
    """
    provider_id: str
    name: str
    type: str = ""
    typecode: str = ""
    biz_type: str = ""
    address: str = ""
    location: str = ""
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    tel: str = ""
    distance: str = ""
    business_area: str = ""
    navi_poiid: str = ""
    province_code: str = ""
    city_code: str = ""
    province_name: str = ""
    city_name: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, entry: Dict[str, Any]) -> "PoiRecord":
        location = _as_text(entry.get("location"))
        lng, lat = parse_location(location)
        return cls(
            provider_id=_as_text(entry.get("id")),
            name=_as_text(entry.get("name")),
            type=_as_text(entry.get("type")),
            typecode=_as_text(entry.get("typecode")),
            biz_type=_as_text(entry.get("biz_type")),
            address=_as_text(entry.get("address")),
            location=location,
            longitude=lng,
            latitude=lat,
            tel=_as_text(entry.get("tel")),
            distance=_as_text(entry.get("distance")),
            business_area=_as_text(entry.get("business_area")),
            navi_poiid=_as_text(entry.get("navi_poiid")),
            province_code=_as_text(entry.get("pcode")),
            city_code=_as_text(entry.get("adcode")),
            province_name=_as_text(entry.get("pname")),
            city_name=_as_text(entry.get("cityname")),
            extra={k: v for k, v in entry.items() if k not in _MODELED_FIELDS},
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "id": self.provider_id,
                "name": self.name,
                "type": self.type,
                "typecode": self.typecode,
                "biz_type": self.biz_type,
                "address": self.address,
                "location": self.location,
                "tel": self.tel,
                "distance": self.distance,
                "business_area": self.business_area,
                "navi_poiid": self.navi_poiid,
                "pcode": self.province_code,
                "adcode": self.city_code,
                "pname": self.province_name,
                "cityname": self.city_name,
            }
        )
        return payload


@dataclass(frozen=True)
class PageResult:
    """A single page of search results plus the provider's status fields."""
    status: str
    count: int
    info: str
    infocode: str
    pois: List[PoiRecord]
    suggestion: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "PageResult":
        entries = data.get("pois") or []
        try:
            count = int(data.get("count") or 0)
        except (TypeError, ValueError):
            count = 0
        return cls(
            status=_as_text(data.get("status")),
            count=count,
            info=_as_text(data.get("info")),
            infocode=_as_text(data.get("infocode")),
            pois=[PoiRecord.from_payload(e) for e in entries if isinstance(e, dict)],
            suggestion=data.get("suggestion") or {},
            raw=data,
        )


class SearchProvider(Protocol):
    provider_name: str

    async def search_page(self, query: SearchQuery) -> PageResult:
        """
        Fetches one page. Raises ExhaustedRetries once the retry budget is spent.
        """
        ...
