from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv(override=False)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    amap_key: str = os.getenv("AMAP_KEY", "")
    amap_base_url: str = os.getenv("AMAP_BASE_URL", "https://restapi.amap.com/v5/place/text")
    data_dir: str = os.getenv("POIFINDER_DATA_DIR", "./poi-data")
    regions_file: str = os.getenv("POIFINDER_REGIONS_FILE", "")

    # bulk search defaults; requests may override concurrency and delay
    max_concurrency: int = int(os.getenv("POIFINDER_MAX_CONCURRENCY", "1"))
    max_page_concurrency: int = int(os.getenv("POIFINDER_MAX_PAGE_CONCURRENCY", "2"))
    delay_min_ms: int = int(os.getenv("POIFINDER_DELAY_MIN_MS", "1000"))
    delay_max_ms: int = int(os.getenv("POIFINDER_DELAY_MAX_MS", "1500"))
    page_size: int = int(os.getenv("POIFINDER_PAGE_SIZE", "25"))
    max_pages: int = int(os.getenv("POIFINDER_MAX_PAGES", "100"))
    filter_by_keyword: bool = _env_bool("POIFINDER_FILTER_BY_KEYWORD")

    # retry on transport errors and the soft rate limit
    retry_count: int = int(os.getenv("POIFINDER_RETRY_COUNT", "3"))
    retry_delay_ms: int = int(os.getenv("POIFINDER_RETRY_DELAY_MS", "1000"))

    task_retention_s: float = float(os.getenv("POIFINDER_TASK_RETENTION_S", "3600"))
    reap_interval_s: float = float(os.getenv("POIFINDER_REAP_INTERVAL_S", "600"))
    log_level: str = os.getenv("POIFINDER_LOG_LEVEL", "INFO")

    # shared secret for the /v1 routes; empty rejects every request
    api_key: str = os.getenv("POIFINDER_API_KEY", "")

settings = Settings()
