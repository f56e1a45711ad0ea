from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from .fhir import BUNDLE_TYPES

# Best mapping attached to a search hit
class MappingSummary(BaseModel):
    target_system: str
    target_code: str
    target_display: Optional[str] = None
    confidence: Optional[float] = None
    equivalence: str
    method: Optional[str] = None
    status: str

    class Config:
        from_attributes = True

class SearchResult(BaseModel):
    system: str
    code: str
    display: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    semantic_tag: Optional[str] = None
    mapping: Optional[MappingSummary] = None

    class Config:
        from_attributes = True

# Schema for the /terminology/search endpoint response
class SearchResponse(BaseModel):
    query: str
    system: str
    total: int
    results: List[SearchResult]

# Schema for the /translate endpoint request body
class TranslateRequest(BaseModel):
    system: str = "NAMASTE"
    code: str = Field(..., min_length=1)

class Translation(BaseModel):
    target_code: str
    target_display: Optional[str] = None
    target_system: str
    equivalence: str
    confidence: Optional[float] = None

    class Config:
        from_attributes = True

class TranslationResult(BaseModel):
    success: bool
    source_system: str
    source_code: str
    translations: List[Translation]

    class Config:
        from_attributes = True

class ConceptMapRow(BaseModel):
    map_id: int
    source_system: str
    source_code: str
    source_display: Optional[str] = None
    target_system: str
    target_code: str
    target_display: Optional[str] = None
    confidence: Optional[float] = None
    equivalence: str
    method: Optional[str] = None
    status: str
    evidence: Optional[str] = None
    references_resolved: bool

    class Config:
        from_attributes = True

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class MappingsPage(BaseModel):
    mappings: List[ConceptMapRow]
    pagination: Pagination

# Schema for the POST /terminology/validate request body
class ValidateMappingRequest(BaseModel):
    namaste_code: str
    icd11_code: str

# Schema for the POST /terminology/upload request body
class UploadRequest(BaseModel):
    system: str
    csv_data: str
    file_name: Optional[str] = None

class LoginRequest(BaseModel):
    abha_id: str

class PatientIn(BaseModel):
    id: str
    name: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[str] = None

class DiagnosisEntryIn(BaseModel):
    namaste_code: str
    clinical_notes: Optional[str] = ""
    clinical_status: str = "active"

# Schema for the POST /diagnosis-sessions request body
class DiagnosisSessionCreate(BaseModel):
    patient: PatientIn
    session_title: Optional[str] = None
    chief_complaint: Optional[str] = None
    entries: List[DiagnosisEntryIn]

class DiagnosisEntryResponse(BaseModel):
    id: int
    position: int
    namaste_code: str
    namaste_display: Optional[str] = None
    icd11_code: Optional[str] = None
    icd11_display: Optional[str] = None
    confidence_score: Optional[float] = None
    mapping_source: Optional[str] = None
    clinical_notes: Optional[str] = None
    clinical_status: str
    recorded_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class DiagnosisSessionResponse(BaseModel):
    id: int
    patient_id: str
    patient_name: Optional[str] = None
    clinician_id: str
    clinician_name: Optional[str] = None
    session_title: Optional[str] = None
    chief_complaint: Optional[str] = None
    total_codes: int
    confidence_score: Optional[float] = None
    created_at: Optional[datetime] = None
    entries: List[DiagnosisEntryResponse]

    class Config:
        from_attributes = True

# FHIR Bundle accepted by POST /fhir/Bundle
class BundleEntryIn(BaseModel):
    fullUrl: Optional[str] = None
    resource: Dict[str, Any]
    request: Optional[Dict[str, Any]] = None

    class Config:
        extra = "allow"

class BundleIn(BaseModel):
    resourceType: Literal["Bundle"]
    id: Optional[str] = None
    type: Literal[BUNDLE_TYPES]
    entry: List[BundleEntryIn]
    meta: Optional[Dict[str, Any]] = None

    class Config:
        extra = "allow"
