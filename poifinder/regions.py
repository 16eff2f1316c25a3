# Read-only province/city directory used to turn user regions into search regions.
# poifinder/regions.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .core.tasks import RegionSummary

# Province-level names ending with this are municipalities (cities in their own right).
MUNICIPALITY_SUFFIX = "市"


@dataclass(frozen=True)
class RegionDirectory:
    """
    `provinces` lists every province-level name; `province_to_cities` maps
    each of them to its cities. AMap only accepts city-level regions, so
    provinces are expanded before searching.

    The file form is `{"provinces": [...], "province_to_cities": {...}}`.
    """
    provinces: List[str] = field(default_factory=list)
    province_to_cities: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str) -> "RegionDirectory":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls(
            provinces=list(data.get("provinces", [])),
            province_to_cities={k: list(v) for k, v in (data.get("province_to_cities") or {}).items()},
        )

    def is_province(self, name: str) -> bool:
        return name in self.provinces

    def is_municipality(self, name: str) -> bool:
        return self.is_province(name) and name.endswith(MUNICIPALITY_SUFFIX)

    def expand(self, regions: Iterable[str]) -> List[str]:
        """
        Replaces provinces with their cities, keeping municipalities and
        dropping plain province names listed among a province's cities.
        Names the directory does not know are passed through as cities.
        Order is first seen, without duplicates.
        """
        cities: List[str] = []
        seen = set()

        def add(name: str) -> None:
            if name not in seen:
                seen.add(name)
                cities.append(name)

        for region in regions:
            if not self.is_province(region):
                add(region)
                continue
            for city in self.province_to_cities.get(region, []):
                if not self.is_province(city) or self.is_municipality(city):
                    add(city)
        return cities

    def all_cities(self) -> List[str]:
        return self.expand(self.provinces)

    def province_of(self, name: str) -> Optional[str]:
        if self.is_province(name):
            return name
        for province, cities in self.province_to_cities.items():
            if name in cities:
                return province
        return None

    def rollup(self, breakdown: Iterable[RegionSummary]) -> List[RegionSummary]:
        """
        Sums city-level counts per province, largest first. Names with no
        known province (including the "unknown" bucket) keep their own entry,
        so the counts still add up to the snapshot total.
        """
        counts: Dict[str, int] = {}
        for item in breakdown:
            province = self.province_of(item.region) or item.region
            counts[province] = counts.get(province, 0) + item.count
        ordered = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        return [RegionSummary(region=p, count=c) for p, c in ordered]
