import csv
import io
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .codesystems import CodeSystem, normalize_confidence, normalize_equivalence, resolve_system
from .exceptions import InvalidConfidenceError
from .seed_data import CuratedMapping

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500

# Accepted header names per column, first match wins. Covers the NAMASTE
# portal export (NAMC_*), the curated CSVs and the static seed arrays.
COLUMN_ALIASES = {
    CodeSystem.NAMASTE: {
        "code": ("namaste_code", "namc_code", "code"),
        "display": ("namaste_display", "namc_term", "display", "term"),
        "description": ("namaste_description", "short_definition", "description"),
        "category": ("category",),
        "ayush_system": ("ayush_system",),
    },
    CodeSystem.ICD11: {
        "code": ("icd11_tm2_code", "icd11_code", "icd_code", "code"),
        "display": ("icd11_tm2_display", "icd11_display", "icd_title", "title", "display"),
        "description": ("icd11_tm2_description", "icd11_description", "description"),
        "category": ("category", "chapter"),
    },
    CodeSystem.SNOMED: {
        "code": ("snomed_code", "concept_id", "code"),
        "display": ("snomed_term", "term", "display"),
        "description": ("definition", "description"),
        "semantic_tag": ("semantic_tag",),
    },
    CodeSystem.LOINC: {
        "code": ("loinc_code", "loinc_num", "code"),
        "display": ("loinc_term", "long_common_name", "term", "display"),
        "component": ("component",),
        "category": ("class",),
    },
}

ENTRY_COLUMNS = ("code", "display", "description", "category", "semantic_tag", "ayush_system", "component")


@dataclass
class RowResult:
    key: str
    ok: bool
    error: Optional[str] = None


@dataclass
class ParsedBatch:
    system: CodeSystem
    rows: List[dict] = field(default_factory=list)
    skipped_header: int = 0
    skipped_blank: int = 0
    duplicates: int = 0


@dataclass
class LoadReport:
    system: CodeSystem
    parsed: int = 0
    skipped_header: int = 0
    skipped_blank: int = 0
    duplicates: int = 0
    results: List[RowResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def failures(self) -> List[RowResult]:
        return [r for r in self.results if not r.ok]

    def summary(self) -> dict:
        return {
            "system": self.system.value,
            "parsed": self.parsed,
            "skipped_header": self.skipped_header,
            "skipped_blank": self.skipped_blank,
            "duplicates": self.duplicates,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": [{"code": r.key, "error": r.error} for r in self.failures],
        }


@dataclass
class DanglingReference:
    side: str
    system: str
    code: str


@dataclass
class MappingReport:
    results: List[RowResult] = field(default_factory=list)
    dangling: List[DanglingReference] = field(default_factory=list)
    rejected: List[RowResult] = field(default_factory=list)
    duplicates: int = 0

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


# --- Reference data parsing ---

def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _column_lookup(system: CodeSystem, keys: Iterable[str]) -> Dict[str, str]:
    """Map each entry column to the first matching key present in the source."""
    present = {k.strip().lower(): k for k in keys if k}
    lookup = {}
    for column, aliases in COLUMN_ALIASES[system].items():
        for alias in aliases:
            if alias in present:
                lookup[column] = present[alias]
                break
    return lookup


def _to_entry(system: CodeSystem, record: dict, lookup: Dict[str, str]) -> dict:
    entry = {"system": system.value, "active": True}
    for column in ENTRY_COLUMNS:
        source_key = lookup.get(column)
        entry[column] = _clean(record.get(source_key)) if source_key else None
    return entry


def _collect(batch: ParsedBatch, entries: Iterable[dict]) -> ParsedBatch:
    seen = set()
    for entry in entries:
        if not entry["code"]:
            batch.skipped_blank += 1
            continue
        if entry["code"] in seen:
            batch.duplicates += 1
            continue
        seen.add(entry["code"])
        batch.rows.append(entry)
    return batch


def parse_reference_csv(text: str, system) -> ParsedBatch:
    """
    Parse CSV text for one code system into normalized entry dicts.

    The first line names the columns. Later lines that restate the header
    (trimmed, case-insensitive) are dropped, as are lines whose code column
    is blank. When a code appears more than once the first row wins.
    """
    system = resolve_system(system)
    batch = ParsedBatch(system=system)
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    header = next(reader, None)
    if not header:
        return batch

    header_signature = [h.strip().lower() for h in header]
    lookup = _column_lookup(system, header)
    if "code" not in lookup:
        raise ValueError(f"CSV for {system.value} has no code column (header: {header})")

    def entries():
        for values in reader:
            if [v.strip().lower() for v in values] == header_signature:
                batch.skipped_header += 1
                continue
            record = dict(zip(header, values))
            yield _to_entry(system, record, lookup)

    return _collect(batch, entries())


def parse_reference_records(records: Iterable[dict], system) -> ParsedBatch:
    """Same normalization as parse_reference_csv, for in-process seed arrays."""
    system = resolve_system(system)
    batch = ParsedBatch(system=system)
    entries = (_to_entry(system, record, _column_lookup(system, record.keys())) for record in records)
    return _collect(batch, entries)


# --- Upsert helpers ---

def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert is not supported for the '{dialect}' dialect")


def _upsert(db: Session, table, rows: List[dict], conflict_columns, update_columns):
    insert = _insert_for(db)
    stmt = insert(table).values(rows)
    set_ = {column: stmt.excluded[column] for column in update_columns}
    set_["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=set_)
    db.execute(stmt)


def _describe(error: SQLAlchemyError) -> str:
    return str(getattr(error, "orig", None) or error).strip()


def upsert_with_fallback(db: Session, table, rows: List[dict], conflict_columns, update_columns,
                         key=lambda row: row["code"], batch_size: int = DEFAULT_BATCH_SIZE) -> List[RowResult]:
    """
    Upsert rows in batches. When a whole batch fails it is rolled back and
    every row in it is retried on its own, so one bad row only costs itself.
    Returns one RowResult per input row, in input order.
    """
    results = []
    for start in range(0, len(rows), batch_size):
        batch = rows[start:start + batch_size]
        try:
            _upsert(db, table, batch, conflict_columns, update_columns)
            db.commit()
            results.extend(RowResult(key(row), True) for row in batch)
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Bulk upsert into %s failed for %d rows, retrying row by row: %s",
                           table.name, len(batch), _describe(exc))

        for row in batch:
            try:
                _upsert(db, table, [row], conflict_columns, update_columns)
                db.commit()
                results.append(RowResult(key(row), True))
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Upsert into %s failed for %s: %s", table.name, key(row), _describe(exc))
                results.append(RowResult(key(row), False, _describe(exc)))
    return results


# --- Reference data loading ---

def ingest_code_system(db: Session, batch: ParsedBatch, batch_size: int = DEFAULT_BATCH_SIZE) -> LoadReport:
    """
    Upserts a parsed batch into codesystem_entry keyed on (system, code).
    Every other column is replaced. Rows missing from the batch are left as
    they are; nothing is deactivated.
    """
    report = LoadReport(
        system=batch.system,
        parsed=len(batch.rows),
        skipped_header=batch.skipped_header,
        skipped_blank=batch.skipped_blank,
        duplicates=batch.duplicates,
    )
    update_columns = [c for c in ENTRY_COLUMNS if c != "code"] + ["active"]
    report.results = upsert_with_fallback(
        db, models.CodeSystemEntry.__table__, batch.rows, ("system", "code"), update_columns,
        batch_size=batch_size,
    )
    logger.info("Loaded %s: %d upserted, %d failed, %d duplicate header(s), %d blank, %d duplicate code(s)",
                batch.system.value, report.succeeded, report.failed, report.skipped_header,
                report.skipped_blank, report.duplicates)
    return report


def ingest_csv_file(db: Session, csv_path: str, system, batch_size: int = DEFAULT_BATCH_SIZE) -> LoadReport:
    if not os.path.exists(csv_path):
        raise FileNotFoundError(f"CSV file not found at {csv_path}")
    with open(csv_path, "r", encoding="utf-8", newline="") as f:
        batch = parse_reference_csv(f.read(), system)
    return ingest_code_system(db, batch, batch_size=batch_size)


def ingest_records(db: Session, records: Iterable[dict], system, batch_size: int = DEFAULT_BATCH_SIZE) -> LoadReport:
    return ingest_code_system(db, parse_reference_records(records, system), batch_size=batch_size)


# --- Concept map ---

def _display_lookup(db: Session, system: CodeSystem, codes) -> Dict[str, str]:
    if not codes:
        return {}
    rows = db.execute(
        select(models.CodeSystemEntry.code, models.CodeSystemEntry.display)
        .where(models.CodeSystemEntry.system == system.value)
        .where(models.CodeSystemEntry.code.in_(sorted(codes)))
    ).all()
    return {code: display for code, display in rows}


def _as_curated(item) -> CuratedMapping:
    if isinstance(item, CuratedMapping):
        return item
    if isinstance(item, dict):
        return CuratedMapping(**item)
    return CuratedMapping(*item)


def build_concept_map(db: Session, mappings, source_system=CodeSystem.NAMASTE, target_system=CodeSystem.ICD11,
                      method: str = "curated_alignment", status: str = "approved") -> MappingReport:
    """
    Denormalize curated (source, target, confidence, equivalence, evidence)
    tuples with current display text and upsert them into concept_map on
    (source_code, target_code).

    A code with no reference entry keeps its bare code as display. It is
    still written, but logged, listed in the report's ``dangling`` and
    stored with references_resolved = False. Mappings absent from
    ``mappings`` are never removed.
    """
    source_system = resolve_system(source_system)
    target_system = resolve_system(target_system)
    report = MappingReport()

    curated = []
    seen = set()
    for item in mappings:
        mapping = _as_curated(item)
        key = f"{mapping.source_code}->{mapping.target_code}"
        if not mapping.source_code or not mapping.target_code:
            report.rejected.append(RowResult(key, False, "source_code and target_code are required"))
            continue
        if (mapping.source_code, mapping.target_code) in seen:
            report.duplicates += 1
            continue
        try:
            confidence = normalize_confidence(mapping.confidence)
            equivalence = normalize_equivalence(mapping.equivalence)
        except (InvalidConfidenceError, ValueError) as exc:
            report.rejected.append(RowResult(key, False, str(exc)))
            continue
        seen.add((mapping.source_code, mapping.target_code))
        curated.append((mapping, confidence, equivalence))

    source_lookup = _display_lookup(db, source_system, {m.source_code for m, _, _ in curated})
    target_lookup = _display_lookup(db, target_system, {m.target_code for m, _, _ in curated})

    rows = []
    for mapping, confidence, equivalence in curated:
        resolved = True
        for side, system, code, lookup in (("source", source_system, mapping.source_code, source_lookup),
                                           ("target", target_system, mapping.target_code, target_lookup)):
            if code not in lookup:
                resolved = False
                if not any(d.side == side and d.code == code for d in report.dangling):
                    report.dangling.append(DanglingReference(side, system.value, code))
                    logger.warning("Mapping %s references unknown %s code %s; using the code as display",
                                   side, system.value, code)
        rows.append({
            "source_system": source_system.value,
            "source_code": mapping.source_code,
            "source_display": source_lookup.get(mapping.source_code) or mapping.source_code,
            "target_system": target_system.value,
            "target_code": mapping.target_code,
            "target_display": target_lookup.get(mapping.target_code) or mapping.target_code,
            "confidence": confidence,
            "equivalence": equivalence,
            "method": mapping.method or method,
            "status": status,
            "evidence": mapping.evidence,
            "references_resolved": resolved,
        })

    update_columns = ["source_system", "source_display", "target_system", "target_display", "confidence",
                      "equivalence", "method", "status", "evidence", "references_resolved"]
    report.results = upsert_with_fallback(
        db, models.ConceptMap.__table__, rows, ("source_code", "target_code"), update_columns,
        key=lambda row: f"{row['source_code']}->{row['target_code']}",
    )
    logger.info("Concept map %s -> %s: %d upserted, %d failed, %d rejected, %d dangling reference(s)",
                source_system.value, target_system.value, report.succeeded, report.failed,
                len(report.rejected), len(report.dangling))
    return report
