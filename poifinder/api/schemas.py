from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal

TaskStatusName = Literal["pending", "running", "completed", "failed"]

class BulkSearchOptions(BaseModel):
    max_concurrency: Optional[int] = Field(default=None, ge=1, le=50)
    delay_min_ms: Optional[int] = Field(default=None, ge=0)
    delay_max_ms: Optional[int] = Field(default=None, ge=0)

class CreateBulkSearchRequest(BulkSearchOptions):
    keyword: str = Field(min_length=1)
    regions: List[str] = Field(min_length=1)

class CreateBulkSearchResponse(BaseModel):
    task_id: str
    keyword: str
    total_regions: int
    delay_range: str

class RegionCount(BaseModel):
    region: str
    count: int

class TaskProgressModel(BaseModel):
    current: int
    total: int
    percentage: int

class TaskResponse(BaseModel):
    id: str
    keyword: str
    status: TaskStatusName
    progress: TaskProgressModel
    regions: List[str]
    total_results: int
    region_results: List[RegionCount] = []
    error: Optional[str] = None
    start_time: float
    end_time: Optional[float] = None
    result_handle: Optional[str] = None

class TaskStatsResponse(BaseModel):
    total: int
    pending: int
    running: int
    completed: int
    failed: int

class PageResponse(BaseModel):
    status: str
    count: int
    info: str
    infocode: str
    pois: List[Dict[str, Any]]
    suggestion: Dict[str, Any] = {}

class SavedSearchResponse(BaseModel):
    keyword: str
    search_date: str
    timestamp: str
    total_count: int
    region_breakdown: List[RegionCount] = []
    pois: List[Dict[str, Any]] = []

class RegionsResponse(BaseModel):
    provinces: List[str]
    province_to_cities: Dict[str, List[str]]
