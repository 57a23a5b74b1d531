from enum import Enum
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ==========================================
# 🧱 SHARED ENUMS
# ==========================================

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class AnalysisKind(str, Enum):
    EMAIL = "email"
    URL = "url"

class EngineVerdict(str, Enum):
    CLEAN = "clean"
    MALICIOUS = "malicious"
    SUSPICIOUS = "suspicious"

# ==========================================
# 🔎 ANALYSIS MODELS
# ==========================================

class Issue(BaseModel):
    """One heuristic or source finding. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    type: str
    message: str
    severity: Severity

class AnalysisResult(BaseModel):
    """
    Final verdict handed back to callers.
    Serialized with camelCase keys; this is also the history payload shape.
    Build it through classifier.finalize so tier and safety stay derived.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_safe: bool
    risk_tier: RiskTier
    score: int = Field(ge=0, le=100)
    issues: List[Issue] = []
    recommendations: List[str] = []

# ==========================================
# 📡 REPUTATION SOURCE MODELS
# ==========================================

class EngineResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    engine: str
    verdict: EngineVerdict

class SourceVerdict(BaseModel):
    """Normalized opinion from exactly one reputation provider call"""
    source_name: str
    is_malicious: bool = False
    reputation: int = Field(default=100, ge=0, le=100)
    detail: List[EngineResult] = []
    categories: List[str] = []

    def malicious_engines(self) -> int:
        return sum(1 for d in self.detail if d.verdict == EngineVerdict.MALICIOUS)

# ==========================================
# 📥 INPUT / 📤 OUTPUT MODELS
# ==========================================

class EmailAnalysisRequest(BaseModel):
    email: str

class URLAnalysisRequest(BaseModel):
    url: str

class SourceStatus(BaseModel):
    name: str
    kind: AnalysisKind
    configured: bool
    requires_credential: bool

class HistoryRecord(BaseModel):
    """Payload for the external history sink"""
    type: AnalysisKind
    input: str
    result: AnalysisResult
    timestamp: datetime
    user_id: Optional[str] = None
