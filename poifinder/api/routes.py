from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from .auth import require_api_key
from .schemas import (
    CreateBulkSearchRequest,
    BulkSearchOptions,
    CreateBulkSearchResponse,
    PageResponse,
    RegionsResponse,
    SavedSearchResponse,
    TaskResponse,
    TaskStatsResponse,
)
from ..core.errors import ExhaustedRetries

router = APIRouter(dependencies=[Depends(require_api_key)])


def get_services(request: Request):
    return request.app.state.services


def _task_payload(task) -> dict:
    payload = asdict(task)
    payload["status"] = task.status.value
    return payload


def _submit(services, keyword: str, regions: list, opts: BulkSearchOptions) -> CreateBulkSearchResponse:
    if not regions:
        raise HTTPException(status_code=400, detail="no searchable city in regions")
    settings = services.settings
    delay_min = settings.delay_min_ms if opts.delay_min_ms is None else opts.delay_min_ms
    delay_max = settings.delay_max_ms if opts.delay_max_ms is None else opts.delay_max_ms
    if delay_min > delay_max:
        raise HTTPException(status_code=400, detail="delay_min_ms must not exceed delay_max_ms")
    task_id = services.orchestrator.submit(
        keyword,
        regions,
        max_concurrency=opts.max_concurrency,
        delay_min_ms=delay_min,
        delay_max_ms=delay_max,
    )
    return CreateBulkSearchResponse(
        task_id=task_id,
        keyword=keyword,
        total_regions=len(regions),
        delay_range=f"{delay_min}ms - {delay_max}ms",
    )


@router.post("/bulk-searches", response_model=CreateBulkSearchResponse)
async def create_bulk_search(req: CreateBulkSearchRequest, services=Depends(get_services)):
    cities = services.directory.expand(req.regions)
    return _submit(services, req.keyword, cities, req)


@router.post("/bulk-searches/{keyword}", response_model=CreateBulkSearchResponse)
async def create_bulk_search_all_cities(
    keyword: str, opts: Optional[BulkSearchOptions] = None, services=Depends(get_services)
):
    return _submit(services, keyword, services.directory.all_cities(), opts or BulkSearchOptions())


@router.get("/tasks/stats", response_model=TaskStatsResponse)
async def read_task_stats(services=Depends(get_services)):
    return services.registry.stats()


@router.get("/tasks/keyword/{keyword}", response_model=list[TaskResponse])
async def read_tasks_by_keyword(keyword: str, services=Depends(get_services)):
    return [_task_payload(t) for t in services.registry.list_by_keyword(keyword)]


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def read_task(task_id: str, services=Depends(get_services)):
    task = services.registry.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="task not found")
    return _task_payload(task)


@router.get("/poi/search", response_model=PageResponse)
async def search_poi(keyword: str, region: str, page_num: int = 1, services=Depends(get_services)):
    if page_num < 1:
        raise HTTPException(status_code=400, detail="page_num must be >= 1")
    try:
        page = await services.orchestrator.search_page(keyword, region, page_num)
    except ExhaustedRetries as e:
        raise HTTPException(status_code=502, detail=str(e))
    return PageResponse(
        status=page.status,
        count=page.count,
        info=page.info,
        infocode=page.infocode,
        pois=[p.to_payload() for p in page.pois],
        suggestion=page.suggestion,
    )


@router.get("/saved", response_model=list[str])
async def read_saved_keywords(services=Depends(get_services)):
    return await services.store.list_keywords()


@router.get("/saved/{keyword}/dates", response_model=list[str])
async def read_saved_dates(keyword: str, services=Depends(get_services)):
    return [d.isoformat() for d in await services.store.list_dates(keyword)]


@router.get("/saved/{keyword}", response_model=SavedSearchResponse)
async def read_saved(keyword: str, day: Optional[date] = None, services=Depends(get_services)):
    snapshot = await services.store.load(keyword, day)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="no saved search for keyword")
    breakdown = snapshot.region_breakdown
    # city-keyed breakdowns are rolled up to provinces
    if services.directory.provinces and any(not services.directory.is_province(r.region) for r in breakdown):
        breakdown = services.directory.rollup(breakdown)
    return SavedSearchResponse(
        keyword=snapshot.keyword,
        search_date=snapshot.search_date.isoformat(),
        timestamp=snapshot.timestamp,
        total_count=snapshot.total_count,
        region_breakdown=[{"region": r.region, "count": r.count} for r in breakdown],
        pois=[p.to_payload() for p in snapshot.pois],
    )


@router.get("/regions", response_model=RegionsResponse)
async def read_regions(services=Depends(get_services)):
    return RegionsResponse(
        provinces=services.directory.provinces,
        province_to_cities=services.directory.province_to_cities,
    )
