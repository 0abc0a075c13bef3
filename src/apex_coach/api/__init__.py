"""Talking to the analysis backend.

Public API
----------
ApexClient        - HTTP client for submit / lap preview / status / health
CsvUpload         - a telemetry file held in memory
validate_csv      - extension and size checks run before any upload
normalize_result  - raw backend JSON → AnalysisResult
normalize_corner  - raw corner entry → CornerAnalysis
normalize_advice  - raw advice entry → CoachingAdvice
"""

from apex_coach.api.client import ApexClient
from apex_coach.api.models import (
    AnalysisResult,
    AnalysisStatus,
    AnalysisSummary,
    BackendHealth,
    CoachingAdvice,
    CornerAnalysis,
    LapInfo,
    PerformanceScore,
    ScoreBreakdown,
    SessionConditions,
    StoredAnalysis,
)
from apex_coach.api.normalizer import normalize_advice, normalize_corner, normalize_result
from apex_coach.api.validator import CsvUpload, ValidationResult, validate_csv

__all__ = [
    "AnalysisResult",
    "AnalysisStatus",
    "AnalysisSummary",
    "ApexClient",
    "BackendHealth",
    "CoachingAdvice",
    "CornerAnalysis",
    "CsvUpload",
    "LapInfo",
    "PerformanceScore",
    "ScoreBreakdown",
    "SessionConditions",
    "StoredAnalysis",
    "ValidationResult",
    "normalize_advice",
    "normalize_corner",
    "normalize_result",
    "validate_csv",
]
