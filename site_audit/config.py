"""
Loading and validation of the SiteAudit configuration.
Pydantic describes the schema and checks the values; YAML and JSON files are supported.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

__all__ = ["FirecrawlConfig", "AuditConfig", "load_config", "ValidationError"]


class FirecrawlConfig(BaseModel):
    """Settings of the Firecrawl scraping API client."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_url: str = Field("https://api.firecrawl.dev/v1", description="API root, without trailing slash.")
    api_key: Optional[str] = Field(None, description="Fallback key when the request carries none.")
    request_timeout: float = Field(30.0, gt=0, description="Timeout of a single API call (seconds).")
    poll_interval: float = Field(2.0, ge=0, description="Pause between job status polls (seconds).")
    poll_timeout: float = Field(120.0, gt=0, description="Give up on a job after this many seconds.")
    max_poll_errors: int = Field(10, ge=0, description="Consecutive polling errors tolerated.")
    batch_size: int = Field(50, ge=1, description="URLs per batch-scrape job.")
    max_result_pages: int = Field(50, ge=0, description="Follow-up result pages fetched per job.")

    @field_validator("api_url", mode="before")
    def _strip_trailing_slash(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.rstrip("/")
        return v


class AuditConfig(BaseModel):
    """Configuration shared by every audit run."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_agent: str = Field(
        "Mozilla/5.0 (compatible; SiteAuditBot/1.0)", min_length=1, description="User-Agent header."
    )
    timeout: float = Field(10.0, gt=0, description="Timeout of one page request (seconds).")
    sitemap_timeout: float = Field(10.0, gt=0, description="Timeout of one sitemap/robots.txt request.")
    retry_times: int = Field(1, ge=0, description="Retries on 5xx/429 for page fetches.")
    rate_limit: float = Field(5.0, gt=0, description="Requests per second of the built-in crawler.")
    max_depth: int = Field(3, ge=0, description="Link depth of the built-in crawler.")

    scraper: Literal["firecrawl", "local"] = Field("firecrawl", description="Page content provider.")
    scrape_batch_size: int = Field(5, ge=1, description="Parallel fetches per batch of the local scraper.")
    firecrawl: FirecrawlConfig = Field(default_factory=FirecrawlConfig)

    max_sitemap_urls: int = Field(200, ge=1)
    max_child_sitemaps: int = Field(10, ge=0)

    default_page_limit: int = Field(50, ge=1)
    max_page_limit: int = Field(200, ge=1)
    supplement_threshold: int = Field(10, ge=0, description="Supplement sitemap pages below this count.")
    supplement_max_pages: int = Field(30, ge=1, description="Upper bound of the supplementary crawl.")
    duplicate_check_ceiling: float = Field(300.0, gt=0, description="Outer limit of a duplicate check.")
    noindex_check_ceiling: float = Field(120.0, gt=0, description="Outer limit of a noindex check.")
    soft_deadline_fraction: float = Field(
        0.6, gt=0, le=1, description="Share of the ceiling after which the supplementary crawl is skipped."
    )

    similarity_threshold: float = Field(0.8, gt=0, le=1)
    shingle_size: int = Field(3, ge=1)
    min_words: int = Field(0, ge=0, description="Pages with fewer words are not compared.")
    detect_subsets: bool = Field(True, description="Also flag pages mostly contained in another page.")

    noindex_batch_size: int = Field(5, ge=1)
    noindex_batch_delay: float = Field(0.5, ge=0, description="Pause between noindex batches (seconds).")
    noindex_sitemap_timeout: float = Field(15.0, gt=0)

    @model_validator(mode="after")
    def _check_limits(self) -> AuditConfig:
        if self.default_page_limit > self.max_page_limit:
            raise ValueError("default_page_limit must not exceed max_page_limit")
        return self


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of YAML must be a mapping, got {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of JSON must be a mapping, got {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None]) -> AuditConfig:
    """
    Read YAML or JSON and return a validated AuditConfig.
    Raises FileNotFoundError when the file (or the default configs/default.yaml) is missing.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(_DEFAULT_CFG))
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Unsupported config format: {suffix}")

    return AuditConfig(**data)
