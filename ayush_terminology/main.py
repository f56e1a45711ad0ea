from fastapi import FastAPI, Depends, HTTPException, Request, Query, Body
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from pydantic import ValidationError
from dataclasses import asdict
from typing import Any, Dict, List
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
import logging
import math
import httpx
import jwt

from . import fhir, models, schemas
from .bundle import Patient, assemble_transaction_bundle, check_bundle_preconditions
from .codesystems import CodeSystem
from .config import APP_SECRET_KEY, CORS_ORIGINS, FHIR_SUBMIT_URL, LOG_LEVEL
from .database import engine, get_db, check_db_connection
from .diagnosis import DiagnosisDraft, ProblemList
from .exceptions import BundleValidationError, UnknownCodeSystemError
from .identity import IdentityProvider, MockAbhaIdentityProvider, Principal, decode_token, issue_token
from .ingestion_logic import ingest_code_system, parse_reference_csv
from .search import search_terminology
from .translation import (
    CONCEPT_MAP_ID, NAMASTE_CODESYSTEM_ID, capability_statement, concept_map_resource, expand_value_set,
    lookup_code, namaste_code_system_resource, to_parameters, translate_code,
)

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="AYUSH Terminology Service",
    description="A FHIR-compliant microservice for searching, mapping and dual-coding NAMASTE and ICD-11 TM2 terminologies.",
    version="1.0.0"
)
app.state.identity_provider = MockAbhaIdentityProvider()

app.add_middleware(SessionMiddleware, secret_key=APP_SECRET_KEY, same_site='lax', https_only=False)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def fhir_error(status_code: int, code: str, details: str, diagnostics=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=fhir.operation_outcome("error", code, details, diagnostics))

# --- Authentication ---

def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider

def current_principal(request: Request) -> Principal:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
    else:
        token = request.session.get("access_token")
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return decode_token(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

def require_role(*roles: str):
    def _check(principal: Principal = Depends(current_principal)) -> Principal:
        if not set(roles) & set(principal.roles):
            raise HTTPException(status_code=403, detail=f"Requires one of the roles: {', '.join(roles)}")
        return principal
    return _check

def require_scope(scope: str):
    def _check(principal: Principal = Depends(current_principal)) -> Principal:
        if scope not in principal.scopes:
            raise HTTPException(status_code=403, detail=f"Token is missing the {scope} scope")
        return principal
    return _check

@app.post("/auth/login", tags=["Authentication"])
def auth_login(body: schemas.LoginRequest, request: Request, provider: IdentityProvider = Depends(get_identity_provider)):
    principal = provider.authenticate(body.abha_id)
    if principal is None:
        raise HTTPException(status_code=401, detail="Invalid ABHA ID. Please check your ABHA ID format (XX-XXXX-XXXX-XXXX).")
    session = issue_token(principal)
    request.session["access_token"] = session["access_token"]
    logger.info("ABHA login for %s", principal.id)
    return session

@app.post("/auth/logout", tags=["Authentication"])
def auth_logout(request: Request):
    request.session.clear()
    return {"status": "signed_out"}

@app.get("/api/users/me", tags=["Users"])
def read_users_me(principal: Principal = Depends(current_principal)):
    return principal.public()

# --- Terminology API Endpoints ---

@app.get("/", tags=["Root"])
def read_root():
    return {"message": "Welcome to the AYUSH Terminology Service API. Go to /docs for API documentation."}

@app.get("/health", tags=["Root"])
def health():
    reachable = check_db_connection()
    return {"status": "ok" if reachable else "degraded", "database": reachable}

@app.get("/terminology/search", response_model=schemas.SearchResponse, tags=["Terminology"])
def search_terms(
    query: str = Query(..., min_length=1, max_length=200),
    system: str = "ALL",
    limit: int = Query(10, ge=1, le=100),
    exact: bool = False,
    db: Session = Depends(get_db),
):
    try:
        results = search_terminology(db, query, system=system, limit=limit, exact=exact)
    except UnknownCodeSystemError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"query": query, "system": system.upper(), "total": len(results), "results": [asdict(r) for r in results]}

@app.get("/terminology/translate", response_model=schemas.TranslationResult, tags=["Terminology"])
def translate_json(system: str = "NAMASTE", code: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    try:
        return asdict(translate_code(db, system, code))
    except UnknownCodeSystemError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

@app.post("/translate", response_model=Dict[str, Any], tags=["Terminology"])
def translate_parameters(request: schemas.TranslateRequest, db: Session = Depends(get_db)):
    try:
        return to_parameters(translate_code(db, request.system, request.code))
    except UnknownCodeSystemError as exc:
        return fhir_error(400, "invalid", str(exc))

@app.get("/terminology/mappings", response_model=schemas.MappingsPage, tags=["Terminology"])
def list_mappings(
    status: str = "approved",
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    query = db.query(models.ConceptMap)
    if status != "all":
        query = query.filter(models.ConceptMap.status == status)
    total = query.count()
    mappings = (
        query.order_by(models.ConceptMap.source_code, models.ConceptMap.target_code)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "mappings": mappings,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }

@app.post("/terminology/validate", tags=["Terminology"])
def validate_mapping(body: schemas.ValidateMappingRequest, db: Session = Depends(get_db)):
    def exists(system, code):
        return db.query(models.CodeSystemEntry.id).filter(
            models.CodeSystemEntry.system == system.value, models.CodeSystemEntry.code == code
        ).first() is not None

    mapping = db.query(models.ConceptMap).filter(
        models.ConceptMap.source_code == body.namaste_code, models.ConceptMap.target_code == body.icd11_code
    ).first()
    namaste_valid = exists(CodeSystem.NAMASTE, body.namaste_code)
    icd11_valid = exists(CodeSystem.ICD11, body.icd11_code)
    return {
        "namaste_code": body.namaste_code,
        "icd11_code": body.icd11_code,
        "validation": {
            "namaste_valid": namaste_valid,
            "icd11_valid": icd11_valid,
            "mapping_exists": mapping is not None,
            "overall_valid": namaste_valid and icd11_valid,
        },
        "existing_mapping": schemas.ConceptMapRow.model_validate(mapping) if mapping else None,
    }

@app.post("/terminology/upload", tags=["Terminology"])
def upload_terminology(
    body: schemas.UploadRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("admin", "ayush_practitioner")),
    _: Principal = Depends(require_scope("terminology.write")),
):
    try:
        batch = parse_reference_csv(body.csv_data, body.system)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not batch.rows:
        raise HTTPException(status_code=400, detail="No valid rows found in CSV")
    report = ingest_code_system(db, batch)
    logger.info("%s uploaded %s (%d rows)", principal.id, body.file_name or "terminology_upload.csv", report.parsed)
    return {
        "message": "Upload completed",
        "file_name": body.file_name or "terminology_upload.csv",
        "summary": report.summary(),
    }

# --- FHIR Terminology Endpoints ---

@app.get("/fhir/metadata", tags=["FHIR"])
def fhir_metadata():
    return capability_statement()

@app.get("/fhir/CodeSystem/$lookup", tags=["FHIR"])
def fhir_lookup(system: str = Query(...), code: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    try:
        result = lookup_code(db, system, code)
    except UnknownCodeSystemError as exc:
        return fhir_error(400, "invalid", str(exc))
    if result is None:
        return fhir_error(404, "not-found", f"Code {code} not found in system {system}")
    return result

@app.get("/fhir/CodeSystem/{codesystem_id}", tags=["FHIR"])
def get_code_system(codesystem_id: str, db: Session = Depends(get_db)):
    if codesystem_id != NAMASTE_CODESYSTEM_ID:
        return fhir_error(404, "not-found", f"CodeSystem {codesystem_id} not found")
    return namaste_code_system_resource(db)

@app.get("/fhir/ConceptMap/$translate", tags=["FHIR"])
def fhir_translate(
    system: str = Query(...),
    code: str = Query(..., min_length=1),
    targetsystem: str = None,
    reverse: bool = False,
    db: Session = Depends(get_db),
):
    try:
        return to_parameters(translate_code(db, system, code, target_system=targetsystem, reverse=reverse))
    except UnknownCodeSystemError as exc:
        return fhir_error(400, "invalid", str(exc))

@app.get("/fhir/ConceptMap/{concept_map_id}", tags=["FHIR"])
def get_concept_map(concept_map_id: str, db: Session = Depends(get_db)):
    if concept_map_id != CONCEPT_MAP_ID:
        return fhir_error(404, "not-found", f"ConceptMap {concept_map_id} not found")
    return concept_map_resource(db)

@app.get("/fhir/ValueSet/{valueset_id}/$expand", tags=["FHIR"])
def expand_namaste_value_set(
    valueset_id: str,
    filter: str = "",
    count: int = Query(20, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    if valueset_id != NAMASTE_CODESYSTEM_ID:
        return fhir_error(404, "not-found", f"ValueSet {valueset_id} not found")
    return expand_value_set(db, filter, count=count, offset=offset)

@app.post("/fhir/Bundle", status_code=201, tags=["FHIR"])
def submit_bundle(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("healthcare_provider")),
    _: Principal = Depends(require_scope("bundle.create")),
):
    try:
        bundle_in = schemas.BundleIn.model_validate(payload)
    except ValidationError as exc:
        return fhir_error(400, "invalid", "Bundle validation failed", exc.json())

    stored = dict(payload)
    stored["id"] = bundle_in.id or fhir.new_id()
    stored["meta"] = {**(bundle_in.meta or {}), "lastUpdated": fhir.now_iso()}
    record = models.StoredBundle(
        bundle_id=stored["id"], bundle_type=bundle_in.type, entry_count=len(bundle_in.entry), resource=stored
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return fhir_error(409, "duplicate", f"Bundle {stored['id']} already exists")
    logger.info("%s stored %s bundle %s with %d entries", principal.id, bundle_in.type, stored["id"], record.entry_count)
    return stored

# --- Diagnosis & EMR Endpoints ---

def forward_bundle(bundle: dict) -> None:
    """POST an assembled bundle to FHIR_SUBMIT_URL; any failure is a 502."""
    try:
        with httpx.Client() as client:
            response = client.post(FHIR_SUBMIT_URL, json=bundle)
    except httpx.HTTPError as exc:
        logger.error("FHIR server unreachable at %s: %s", FHIR_SUBMIT_URL, exc)
        raise HTTPException(status_code=502, detail="Failed to reach the FHIR server.")
    if response.status_code not in (200, 201):
        logger.error("FHIR server rejected bundle %s with %s", bundle.get("id"), response.status_code)
        raise HTTPException(status_code=502, detail="Failed to save bundle to the FHIR server.")

@app.post("/diagnosis-sessions", status_code=201, response_model=schemas.DiagnosisSessionResponse, tags=["Diagnosis"])
def create_diagnosis_session(
    body: schemas.DiagnosisSessionCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("healthcare_provider", "ayush_practitioner")),
    _: Principal = Depends(require_scope("bundle.create")),
):
    try:
        check_bundle_preconditions(body.patient.id, body.entries)
    except BundleValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    problems = ProblemList()
    for item in body.entries:
        entry = db.query(models.CodeSystemEntry).filter(
            models.CodeSystemEntry.system == CodeSystem.NAMASTE.value,
            models.CodeSystemEntry.code == item.namaste_code,
        ).first()
        if not entry:
            raise HTTPException(status_code=404, detail=f"NAMASTE code not found: {item.namaste_code}")
        translation = translate_code(db, CodeSystem.NAMASTE, entry.code, target_system=CodeSystem.ICD11)
        draft = DiagnosisDraft().select(entry.code, entry.display, translation)
        try:
            draft.annotate(item.clinical_notes or "", item.clinical_status)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        problems.add(draft)

    patient = Patient(**body.patient.model_dump())
    fhir_bundle = assemble_transaction_bundle(patient, problems.entries)

    if FHIR_SUBMIT_URL:
        forward_bundle(fhir_bundle)

    saved = problems.save()
    confidences = [d.translation.best.confidence for d in saved
                   if d.translation.success and d.translation.best.confidence is not None]
    session = models.DiagnosisSession(
        patient_id=patient.id,
        patient_name=patient.name,
        patient_gender=patient.gender,
        patient_birth_date=patient.birth_date,
        clinician_id=principal.id,
        clinician_name=principal.name,
        session_title=body.session_title,
        chief_complaint=body.chief_complaint,
        total_codes=len(saved),
        confidence_score=round(sum(confidences) / len(confidences), 4) if confidences else None,
        fhir_bundle=fhir_bundle,
    )
    for position, draft in enumerate(saved):
        best = draft.translation.best if draft.translation.success else None
        session.entries.append(models.DiagnosisEntry(
            position=position,
            namaste_code=draft.code,
            namaste_display=draft.display,
            icd11_code=best.target_code if best else None,
            icd11_display=best.target_display if best else None,
            confidence_score=best.confidence if best else None,
            mapping_source="concept_map" if best else None,
            clinical_notes=draft.notes,
            clinical_status=draft.clinical_status,
        ))
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info("Diagnosis session %s saved for patient %s with %d code(s)", session.id, patient.id, len(saved))
    return session

@app.get("/diagnosis-sessions", response_model=List[schemas.DiagnosisSessionResponse], tags=["Diagnosis"])
def list_diagnosis_sessions(patient_id: str = None, db: Session = Depends(get_db)):
    query = db.query(models.DiagnosisSession)
    if patient_id:
        query = query.filter(models.DiagnosisSession.patient_id == patient_id)
    return query.order_by(models.DiagnosisSession.id.desc()).all()

@app.get("/diagnosis-sessions/{session_id}", response_model=schemas.DiagnosisSessionResponse, tags=["Diagnosis"])
def get_diagnosis_session(session_id: int, db: Session = Depends(get_db)):
    session = db.get(models.DiagnosisSession, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Diagnosis session not found")
    return session

@app.get("/diagnosis-sessions/{session_id}/bundle", tags=["Diagnosis"])
def get_diagnosis_bundle(session_id: int, db: Session = Depends(get_db)):
    session = db.get(models.DiagnosisSession, session_id)
    if not session:
        return fhir_error(404, "not-found", "Diagnosis session not found")
    return session.fhir_bundle
