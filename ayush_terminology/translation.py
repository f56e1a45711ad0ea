"""
Code translation over the concept map, and the FHIR terminology resources
(Parameters, ConceptMap, CodeSystem, ValueSet expansion) built on it.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from . import fhir, models
from .codesystems import CodeSystem, SYSTEM_URIS, resolve_system, system_uri
from .search import mapping_rank, response_confidence, search_terminology

logger = logging.getLogger(__name__)

NAMASTE_CODESYSTEM_ID = "namaste-codes"
CONCEPT_MAP_ID = "namaste-to-icd11"
BASE_URL = "https://terminology.mohfw.gov.in/fhir"


@dataclass
class Translation:
    target_code: str
    target_display: Optional[str]
    target_system: str
    equivalence: str
    confidence: Optional[float]


@dataclass
class TranslationResult:
    success: bool
    source_system: str
    source_code: str
    translations: List[Translation] = field(default_factory=list)

    @property
    def best(self) -> Optional[Translation]:
        return self.translations[0] if self.translations else None


def _target_uri(system_name: str) -> str:
    try:
        return system_uri(system_name)
    except ValueError:
        return system_name


def translate_code(db: Session, system, code: str, target_system=None, reverse: bool = False) -> TranslationResult:
    """
    Look up every mapping whose source code is ``code``. Codes are assumed
    unique across systems; ``system`` is validated and echoed but does not
    narrow the lookup. ``target_system`` keeps only mappings into that
    system. With ``reverse`` the lookup runs on target codes and the
    matches are the source concepts (``target_system`` then names the
    system being translated back into). No mapping gives ``success=False``
    and no translations.
    """
    source_system = resolve_system(system)
    query = db.query(models.ConceptMap)
    if reverse:
        query = query.filter(models.ConceptMap.target_code == code)
    else:
        query = query.filter(models.ConceptMap.source_code == code)
    if target_system is not None:
        wanted = resolve_system(target_system).value
        column = models.ConceptMap.source_system if reverse else models.ConceptMap.target_system
        query = query.filter(column == wanted)
    mappings = sorted(query.all(), key=mapping_rank)
    translations = [
        Translation(
            target_code=m.source_code if reverse else m.target_code,
            target_display=m.source_display if reverse else m.target_display,
            target_system=_target_uri(m.source_system if reverse else m.target_system),
            equivalence=m.equivalence,
            confidence=response_confidence(m),
        )
        for m in mappings
    ]
    if not translations:
        logger.info("No mapping found for %s code %s", source_system.value, code)
    return TranslationResult(bool(translations), source_system.value, code, translations)


def to_parameters(result: TranslationResult) -> dict:
    parameters = [{"name": "result", "valueBoolean": result.success}]
    if not result.success:
        parameters.append({
            "name": "message",
            "valueString": f"No mapping found for {result.source_system} code {result.source_code}",
        })
    for t in result.translations:
        part = [
            {"name": "equivalence", "valueCode": t.equivalence},
            {"name": "concept", "valueCoding": fhir.coding(t.target_system, t.target_code, t.target_display)},
        ]
        if t.confidence is not None:
            part.append({
                "name": "product",
                "part": [
                    {"name": "property", "valueCode": fhir.CONFIDENCE_PROPERTY},
                    {"name": "value", "valueString": str(t.confidence)},
                ],
            })
        parameters.append({"name": "match", "part": part})
    return {"resourceType": "Parameters", "id": fhir.new_id(), "meta": {"lastUpdated": fhir.now_iso()},
            "parameter": parameters}


def _part(parts, name):
    return next((p for p in parts or [] if p.get("name") == name), None)


def parse_parameters(resource: dict, source_system: str = "", source_code: str = "") -> TranslationResult:
    """Read a $translate Parameters resource back into a TranslationResult."""
    parameters = resource.get("parameter") or []
    success = bool((_part(parameters, "result") or {}).get("valueBoolean"))
    translations = []
    for match in (p for p in parameters if p.get("name") == "match"):
        parts = match.get("part")
        concept = (_part(parts, "concept") or {}).get("valueCoding") or {}
        product = _part(parts, "product")
        raw = (_part(product.get("part") if product else None, "value") or {}).get("valueString")
        try:
            confidence = float(raw) if raw is not None else None
        except ValueError:
            confidence = None
        translations.append(Translation(
            target_code=concept.get("code"),
            target_display=concept.get("display"),
            target_system=concept.get("system"),
            equivalence=(_part(parts, "equivalence") or {}).get("valueCode"),
            confidence=confidence,
        ))
    return TranslationResult(success and bool(translations), source_system, source_code, translations)


def concept_map_resource(db: Session, status: str = "approved") -> dict:
    """Approved mappings as a ConceptMap, one group per (source, target) system pair."""
    mappings = (
        db.query(models.ConceptMap)
        .filter(models.ConceptMap.status == status)
        .order_by(models.ConceptMap.source_code, models.ConceptMap.target_code)
        .all()
    )
    groups = {}
    for m in mappings:
        group = groups.setdefault((m.source_system, m.target_system), {
            "source": _target_uri(m.source_system),
            "target": _target_uri(m.target_system),
            "element": [],
        })
        elements = group["element"]
        if not elements or elements[-1]["code"] != m.source_code:
            elements.append({"code": m.source_code, "display": m.source_display, "target": []})
        target = {"code": m.target_code, "display": m.target_display, "equivalence": m.equivalence}
        if m.evidence:
            target["comment"] = m.evidence
        confidence = response_confidence(m)
        if confidence is not None:
            target["product"] = [{"property": fhir.CONFIDENCE_PROPERTY, "value": str(confidence)}]
        elements[-1]["target"].append(target)

    return {
        "resourceType": "ConceptMap",
        "id": CONCEPT_MAP_ID,
        "meta": fhir.meta("ConceptMap"),
        "url": f"{BASE_URL}/ConceptMap/{CONCEPT_MAP_ID}",
        "version": "1.0.0",
        "name": "NAMASTEToICD11ConceptMap",
        "title": "NAMASTE to ICD-11 Concept Map",
        "status": "active",
        "experimental": False,
        "date": fhir.now_iso(),
        "publisher": fhir.PUBLISHER,
        "jurisdiction": fhir.jurisdiction_india(),
        "sourceUri": SYSTEM_URIS[CodeSystem.NAMASTE],
        "targetUri": SYSTEM_URIS[CodeSystem.ICD11],
        "group": list(groups.values()),
    }


def namaste_code_system_resource(db: Session) -> dict:
    entries = (
        db.query(models.CodeSystemEntry)
        .filter(models.CodeSystemEntry.system == CodeSystem.NAMASTE.value)
        .filter(models.CodeSystemEntry.active.is_(True))
        .order_by(models.CodeSystemEntry.code)
        .all()
    )
    concepts = []
    for entry in entries:
        concept = {"code": entry.code, "display": entry.display}
        if entry.description:
            concept["definition"] = entry.description
        properties = [{"code": name, "valueString": value}
                      for name, value in (("category", entry.category), ("ayush_system", entry.ayush_system)) if value]
        if properties:
            concept["property"] = properties
        concepts.append(concept)

    return {
        "resourceType": "CodeSystem",
        "id": NAMASTE_CODESYSTEM_ID,
        "meta": fhir.meta("CodeSystem"),
        "url": SYSTEM_URIS[CodeSystem.NAMASTE],
        "version": "2024.1",
        "name": "NAMASTECodes",
        "title": "National AYUSH Morbidity & Standardized Terminologies Electronic (NAMASTE)",
        "status": "active",
        "experimental": False,
        "date": fhir.now_iso(),
        "publisher": fhir.PUBLISHER,
        "jurisdiction": fhir.jurisdiction_india(),
        "caseSensitive": True,
        "valueSet": f"{BASE_URL}/ValueSet/{NAMASTE_CODESYSTEM_ID}",
        "content": "complete",
        "count": len(concepts),
        "property": [
            {"code": "category", "description": "Clinical category of the concept", "type": "string"},
            {"code": "ayush_system", "description": "Ayurveda, Siddha or Unani", "type": "string"},
        ],
        "concept": concepts,
    }


def expand_value_set(db: Session, filter_text: str = "", count: int = 20, offset: int = 0) -> dict:
    hits = search_terminology(db, filter_text, system=CodeSystem.NAMASTE, limit=None)
    page = hits[offset:offset + count]
    contains = []
    for hit in page:
        item = {"system": SYSTEM_URIS[CodeSystem.NAMASTE], "code": hit.code, "display": hit.display}
        properties = []
        if hit.category:
            properties.append({"code": "category", "valueString": hit.category})
        if hit.mapping and hit.mapping.confidence is not None:
            properties.append({"code": "mapping_confidence", "valueDecimal": hit.mapping.confidence})
        if properties:
            item["property"] = properties
        contains.append(item)
    return {
        "resourceType": "ValueSet",
        "id": f"{NAMASTE_CODESYSTEM_ID}-expanded",
        "meta": {"lastUpdated": fhir.now_iso()},
        "url": f"{BASE_URL}/ValueSet/{NAMASTE_CODESYSTEM_ID}",
        "status": "active",
        "publisher": fhir.PUBLISHER,
        "expansion": {
            "identifier": f"urn:uuid:{fhir.new_id()}",
            "timestamp": fhir.now_iso(),
            "total": len(hits),
            "offset": offset,
            "parameter": [{"name": "filter", "valueString": filter_text}, {"name": "count", "valueInteger": count}],
            "contains": contains,
        },
    }


def lookup_code(db: Session, system, code: str) -> Optional[dict]:
    """$lookup as a Parameters resource, or None when the code is not loaded."""
    code_system = resolve_system(system)
    entry = db.query(models.CodeSystemEntry).filter(
        models.CodeSystemEntry.system == code_system.value,
        models.CodeSystemEntry.code == code,
    ).first()
    if entry is None:
        return None
    display = entry.display or entry.code
    return {
        "resourceType": "Parameters",
        "id": fhir.new_id(),
        "meta": {"lastUpdated": fhir.now_iso()},
        "parameter": [
            {"name": "name", "valueString": code_system.value},
            {"name": "display", "valueString": display},
            {"name": "definition", "valueString": entry.description or display},
            {"name": "system", "valueUri": SYSTEM_URIS[code_system]},
        ],
    }


def capability_statement() -> dict:
    def resource(type_, operations, interactions=("read",)):
        return {
            "type": type_,
            "interaction": [{"code": code} for code in interactions],
            "operation": [{"name": name, "definition": f"http://hl7.org/fhir/OperationDefinition/{type_}-{name}"}
                          for name in operations],
        }

    return {
        "resourceType": "CapabilityStatement",
        "id": "namaste-terminology-service",
        "url": f"{BASE_URL}/metadata",
        "version": "2024.1",
        "name": "NAMASTETerminologyService",
        "title": "NAMASTE Terminology Service - Ministry of AYUSH",
        "status": "active",
        "experimental": False,
        "date": fhir.now_iso(),
        "publisher": fhir.PUBLISHER,
        "jurisdiction": fhir.jurisdiction_india(),
        "kind": "instance",
        "software": {"name": "AYUSH Terminology Service", "version": "1.0.0"},
        "implementation": {"description": "NAMASTE to ICD-11 TM2 terminology service", "url": BASE_URL},
        "fhirVersion": "4.0.1",
        "format": ["application/fhir+json"],
        "rest": [{
            "mode": "server",
            "security": {
                "service": [{"coding": [{"system": "http://terminology.hl7.org/CodeSystem/restful-security-service",
                                         "code": "OAuth"}]}],
                "description": "Bearer tokens from POST /auth/login (simulated ABHA)",
            },
            "resource": [
                resource("CodeSystem", ["lookup"]),
                resource("ConceptMap", ["translate"]),
                resource("ValueSet", ["expand"]),
                resource("Bundle", [], interactions=("create",)),
            ],
        }],
    }
