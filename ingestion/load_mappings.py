"""
Builds the concept map from the curated alignment tables.

    python -m ingestion.load_mappings                # NAMASTE -> ICD-11 TM2
    python -m ingestion.load_mappings --bridged      # also the SNOMED-bridged MMS and SNOMED rows

Load the reference vocabularies first so display text can be resolved. A
mapping whose codes are not loaded is still written, and listed below as
a dangling reference.
"""
import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from ayush_terminology import models
from ayush_terminology.codesystems import CodeSystem
from ayush_terminology.database import SessionLocal, engine
from ayush_terminology.ingestion_logic import build_concept_map
from ayush_terminology.seed_data import NAMASTE_TO_ICD11_MMS_BRIDGED, NAMASTE_TO_ICD11_TM2, NAMASTE_TO_SNOMED_BRIDGE

logger = logging.getLogger("ingestion.load_mappings")


def _print_report(label, report):
    print(f"\n{label}: {report.succeeded} upserted, {report.failed} failed, {len(report.rejected)} rejected")
    if report.duplicates:
        print(f"  {report.duplicates} duplicate pair(s) ignored")
    for row in report.rejected + [r for r in report.results if not r.ok]:
        print(f"  {row.key}: {row.error}")
    for ref in report.dangling:
        print(f"  dangling {ref.side} reference: {ref.system} {ref.code}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Load curated NAMASTE alignments into concept_map.")
    parser.add_argument("--bridged", action="store_true", help="Include the SNOMED CT bridged alignments")
    parser.add_argument("--status", default="approved", help="Review status given to the loaded mappings")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    jobs = [("NAMASTE -> ICD-11 TM2", NAMASTE_TO_ICD11_TM2, CodeSystem.ICD11)]
    if args.bridged:
        jobs.append(("NAMASTE -> ICD-11 MMS", NAMASTE_TO_ICD11_MMS_BRIDGED, CodeSystem.ICD11))
        jobs.append(("NAMASTE -> SNOMED CT", NAMASTE_TO_SNOMED_BRIDGE, CodeSystem.SNOMED))

    models.Base.metadata.create_all(bind=engine)
    failed = 0
    db = SessionLocal()
    try:
        for label, mappings, target_system in jobs:
            report = build_concept_map(db, mappings, target_system=target_system, status=args.status)
            _print_report(label, report)
            failed += report.failed
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Concept map load aborted: %s", exc)
        return 1
    finally:
        db.close()
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
