"""Response models for the conversion API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BatchFileResult(_CamelModel):
    filename: str
    success: bool
    converted_name: Optional[str] = Field(None, alias="convertedName")
    download_path: Optional[str] = Field(None, alias="downloadPath")
    error: Optional[str] = None


class BatchResponse(_CamelModel):
    message: str = "Batch conversion completed"
    results: List[BatchFileResult]
    total_files: int = Field(..., alias="totalFiles")
    success_count: int = Field(..., alias="successCount")


class MemorySnapshot(BaseModel):
    rss: int
    vms: int


class SystemInfoResponse(_CamelModel):
    status: Literal["healthy", "degraded"] = "healthy"
    timestamp: datetime
    uptime: float
    memory: MemorySnapshot
    supported_formats: List[str] = Field(..., alias="supportedFormats")
    max_file_size: str = Field(..., alias="maxFileSize")
    max_batch_files: int = Field(..., alias="maxBatchFiles")
    dependencies: Dict[str, bool] = Field(default_factory=dict)
    adapters: List[Dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    timestamp: datetime
