from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class LookupResult(BaseModel):
    prefix: str
    organization: str
    annotation: str = ""
    bits: int


class LookupResponse(BaseModel):
    mac: str
    found: bool
    summary: List[str] = Field(default_factory=list)
    result: Optional[LookupResult] = None


class LookupRequest(BaseModel):
    macs: List[str]


class ServiceStatus(BaseModel):
    ready: bool
    entries: int
    prefix_lengths: List[int]
    manuf_path: str
    url: str
    auto_update: bool
    cron: str
    built_at: Optional[float] = None
    last_updated: Optional[datetime] = None
    next_run_time: Optional[datetime] = None
    last_error: Optional[str] = None


class RefreshReport(BaseModel):
    path: str
    url: str
    timestamp: datetime
    entries: int
