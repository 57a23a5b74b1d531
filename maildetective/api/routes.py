from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends

from maildetective.config import settings
from maildetective.schemas import (
    AnalysisResult, EmailAnalysisRequest, SourceStatus, URLAnalysisRequest
)
from maildetective.services.analysis_service import AnalysisService

router = APIRouter()


@lru_cache(maxsize=1)
def get_analysis_service() -> AnalysisService:
    """Dependency for FastAPI routes"""
    return AnalysisService()

# ============================================================================
# ANALYSIS ENDPOINTS
# ============================================================================

@router.post("/analyze/email", response_model=AnalysisResult)
def analyze_email(request: EmailAnalysisRequest,
                  service: AnalysisService = Depends(get_analysis_service)):
    """Heuristic + reputation analysis of a single email address"""
    return service.analyze_email(request.email)


@router.post("/analyze/url", response_model=AnalysisResult)
def analyze_url(request: URLAnalysisRequest,
                service: AnalysisService = Depends(get_analysis_service)):
    """Heuristic + reputation analysis of a single URL"""
    return service.analyze_url(request.url)

# ============================================================================
# CONFIGURATION ENDPOINTS
# ============================================================================

@router.get("/sources", response_model=List[SourceStatus])
def list_sources(service: AnalysisService = Depends(get_analysis_service)):
    """Which reputation sources would be dispatched (never the keys)"""
    return service.source_status()


@router.get("/health")
def health_check():
    return {
        "status": "healthy",
        "version": settings.VERSION
    }
