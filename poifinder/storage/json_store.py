from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

from ..core.tasks import RegionSummary
from ..providers.base import PoiRecord
from .base import SearchSnapshot

logger = logging.getLogger(__name__)

_SUFFIX = ".json"


class JsonFileStore:
    """
    One JSON file per (keyword, day): `<data_dir>/<keyword>_<YYYY-MM-DD>.json`.

    The keyword is percent-encoded in the file name, so separators and dot
    segments in it never leave `data_dir`.
    """

    def __init__(self, data_dir: str = "./poi-data"):
        self.data_dir = Path(data_dir)

    def _path(self, keyword: str, day: date) -> Path:
        return self.data_dir / f"{quote(keyword, safe='')}_{day.isoformat()}{_SUFFIX}"

    def _read(self, path: Path) -> Dict[str, Any]:
        return json.loads(path.read_text(encoding="utf-8"))

    def _split_name(self, path: Path) -> Optional[tuple[str, date]]:
        keyword, sep, day = path.name[: -len(_SUFFIX)].rpartition("_")
        if not sep or not keyword:
            return None
        try:
            return unquote(keyword), date.fromisoformat(day)
        except ValueError:
            return None

    async def save(self, snapshot: SearchSnapshot) -> str:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        out = self._path(snapshot.keyword, snapshot.search_date)

        pois = [p.to_payload() for p in snapshot.pois]
        if out.exists():
            stored = self._read(out).get("pois", [])
            merged = _unique_by_id(stored + pois)
            logger.info("%s: merged %s new POIs into %s stored", out.name, len(merged) - len(stored), len(stored))
            pois = merged
        else:
            pois = _unique_by_id(pois)

        doc = {
            "keyword": snapshot.keyword,
            "searchDate": snapshot.search_date.isoformat(),
            "timestamp": snapshot.timestamp,
            "totalCount": snapshot.total_count,
            "regionBreakdown": [{"region": r.region, "count": r.count} for r in snapshot.region_breakdown],
            "pois": pois,
        }
        out.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
        return f"file:{out}"

    async def load(self, keyword: str, day: Optional[date] = None) -> Optional[SearchSnapshot]:
        if day is None:
            dates = await self.list_dates(keyword)
            if not dates:
                return None
            day = dates[0]
        path = self._path(keyword, day)
        if not path.exists():
            return None
        doc = self._read(path)
        return SearchSnapshot(
            keyword=doc["keyword"],
            search_date=date.fromisoformat(doc["searchDate"]),
            timestamp=doc.get("timestamp", ""),
            total_count=int(doc.get("totalCount", 0)),
            region_breakdown=[RegionSummary(r["region"], int(r["count"])) for r in doc.get("regionBreakdown", [])],
            pois=[PoiRecord.from_payload(p) for p in doc.get("pois", [])],
        )

    async def list_keywords(self) -> List[str]:
        if not self.data_dir.exists():
            return []
        keywords = set()
        for path in self.data_dir.glob(f"*{_SUFFIX}"):
            parsed = self._split_name(path)
            if parsed:
                keywords.add(parsed[0])
        return sorted(keywords)

    async def list_dates(self, keyword: str) -> List[date]:
        if not self.data_dir.exists():
            return []
        dates = []
        for path in self.data_dir.glob(f"*{_SUFFIX}"):
            parsed = self._split_name(path)
            if parsed and parsed[0] == keyword:
                dates.append(parsed[1])
        return sorted(dates, reverse=True)


def _unique_by_id(pois: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    unique = []
    for p in pois:
        if p.get("id") in seen:
            continue
        seen.add(p.get("id"))
        unique.append(p)
    return unique
