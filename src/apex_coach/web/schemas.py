"""Pydantic request/response schemas for the Web API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str


class BackendHealthResponse(BaseModel):
    reachable: bool
    status: str | None = None
    version: str | None = None
    environment: str | None = None
    error: str | None = None


class AnalyzeResponse(BaseModel):
    analysis_id: str
    display_score: float
    grade: str
    saved: bool
    save_error: str | None = None
    result: dict[str, Any]


class LapRecord(BaseModel):
    lap_number: int
    lap_time_seconds: float
    points_count: int
    is_outlier: bool


class LapPreviewResponse(BaseModel):
    laps: list[LapRecord]


class SummaryRecord(BaseModel):
    id: str
    date: str
    timestamp: int
    score: int
    corner_count: int
    lap_time: float
    grade: str
    filename: str | None = None


class StatisticsRecord(BaseModel):
    total: int
    average_score: int
    best_score: int
    best_id: str | None = None


class AnalysesResponse(BaseModel):
    identity: str
    analyses: list[SummaryRecord]
    statistics: StatisticsRecord


class DeleteResponse(BaseModel):
    deleted: int


class ErrorResponse(BaseModel):
    kind: str
    message: str
    hint: str
