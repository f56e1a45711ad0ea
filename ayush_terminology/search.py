import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from . import models
from .codesystems import CodeSystem, normalize_confidence, resolve_system_filter
from .exceptions import InvalidConfidenceError

logger = logging.getLogger(__name__)

# Columns matched by free-text search, per vocabulary
SEARCH_FIELDS = {
    CodeSystem.NAMASTE: ("code", "display", "description"),
    CodeSystem.ICD11: ("code", "display", "description"),
    CodeSystem.SNOMED: ("display",),
    CodeSystem.LOINC: ("display", "component"),
}


@dataclass
class MappingSummary:
    target_system: str
    target_code: str
    target_display: Optional[str]
    confidence: Optional[float]
    equivalence: str
    method: Optional[str]
    status: str


@dataclass
class SearchResult:
    system: str
    code: str
    display: Optional[str]
    description: Optional[str]
    category: Optional[str]
    semantic_tag: Optional[str]
    mapping: Optional[MappingSummary] = None


def mapping_rank(mapping: models.ConceptMap):
    """Highest confidence first, then target code; missing confidence sorts last."""
    confidence = response_confidence(mapping)
    if confidence is None:
        confidence = -1.0
    return (-confidence, mapping.target_code)


def mappings_by_source(db: Session, codes: Iterable[str]) -> Dict[str, List[models.ConceptMap]]:
    codes = sorted(set(codes))
    if not codes:
        return {}
    grouped: Dict[str, List[models.ConceptMap]] = {}
    for mapping in db.query(models.ConceptMap).filter(models.ConceptMap.source_code.in_(codes)).all():
        grouped.setdefault(mapping.source_code, []).append(mapping)
    for mappings in grouped.values():
        mappings.sort(key=mapping_rank)
    return grouped


def response_confidence(mapping: models.ConceptMap):
    """Stored confidence on the 0-1 scale, or None when it is missing or unusable."""
    try:
        return normalize_confidence(mapping.confidence)
    except InvalidConfidenceError:
        logger.warning("Mapping %s -> %s has an unusable confidence %r",
                       mapping.source_code, mapping.target_code, mapping.confidence)
        return None


def summarize_mapping(mapping: models.ConceptMap) -> MappingSummary:
    return MappingSummary(
        target_system=mapping.target_system,
        target_code=mapping.target_code,
        target_display=mapping.target_display,
        confidence=response_confidence(mapping),
        equivalence=mapping.equivalence,
        method=mapping.method,
        status=mapping.status,
    )


def _match_condition(system: CodeSystem, query: str, exact: bool):
    entry = models.CodeSystemEntry
    if exact:
        needle = query.strip().lower()
        return or_(func.lower(entry.code) == needle, func.lower(entry.display) == needle)
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return or_(*(getattr(entry, name).ilike(f"%{escaped}%", escape="\\") for name in SEARCH_FIELDS[system]))


def search_terminology(db: Session, query: str, system="ALL", limit: Optional[int] = 10, exact: bool = False,
                       with_mappings: bool = True) -> List[SearchResult]:
    """
    Case-insensitive substring search, run independently for each selected
    system with up to ``limit`` hits each. Callers decide on a minimum
    query length; an empty result is a normal outcome.
    """
    hits = []
    for code_system in resolve_system_filter(system):
        hits.extend(
            db.query(models.CodeSystemEntry)
            .filter(models.CodeSystemEntry.system == code_system.value)
            .filter(models.CodeSystemEntry.active.is_(True))
            .filter(_match_condition(code_system, query, exact))
            .order_by(models.CodeSystemEntry.code)
            .limit(limit)
            .all()
        )

    best = {}
    if with_mappings and hits:
        best = {code: mappings[0] for code, mappings in mappings_by_source(db, (h.code for h in hits)).items()}

    results = []
    for hit in hits:
        mapping = best.get(hit.code)
        results.append(SearchResult(
            system=hit.system,
            code=hit.code,
            display=hit.display,
            description=hit.description,
            category=hit.category,
            semantic_tag=hit.semantic_tag,
            mapping=summarize_mapping(mapping) if mapping else None,
        ))
    logger.debug("Search %r in %s returned %d result(s)", query, system, len(results))
    return results
