"""
Loads reference vocabularies into codesystem_entry.

    python -m ingestion.load_reference_data --system NAMASTE --csv data/namaste_code.csv
    python -m ingestion.load_reference_data --system ICD11 --csv data/icd11_TM_2.csv
    python -m ingestion.load_reference_data --seed

Each run upserts on (system, code), so it can be repeated after the source
files change. --seed loads the bundled SNOMED CT and LOINC arrays.
"""
import argparse
import logging
import os
import sys

from sqlalchemy.exc import SQLAlchemyError

from ayush_terminology import models
from ayush_terminology.codesystems import CodeSystem
from ayush_terminology.config import DATA_DIR
from ayush_terminology.database import SessionLocal, engine
from ayush_terminology.ingestion_logic import DEFAULT_BATCH_SIZE, ingest_csv_file, ingest_records
from ayush_terminology.seed_data import LOINC_SEED, SNOMED_CT_SEED

logger = logging.getLogger("ingestion.load_reference_data")

DEFAULT_FILES = {
    CodeSystem.NAMASTE: "namaste_code.csv",
    CodeSystem.ICD11: "icd11_TM_2.csv",
}


def _print_report(report):
    summary = report.summary()
    print(f"\n{summary['system']}: {summary['succeeded']} upserted, {summary['failed']} failed")
    if summary["skipped_header"] or summary["skipped_blank"] or summary["duplicates"]:
        print(f"  skipped {summary['skipped_header']} repeated header(s), {summary['skipped_blank']} blank row(s), "
              f"{summary['duplicates']} duplicate code(s)")
    for error in summary["errors"]:
        print(f"  {error['code']}: {error['error']}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Load NAMASTE, ICD-11 TM2, SNOMED CT and LOINC reference data.")
    parser.add_argument("--system", choices=[s.value for s in CodeSystem], help="Code system of --csv")
    parser.add_argument("--csv", help="CSV file to load (defaults to the system's file under DATA_DIR)")
    parser.add_argument("--seed", action="store_true", help="Load the bundled SNOMED CT and LOINC arrays")
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    jobs = []
    if args.system:
        system = CodeSystem(args.system)
        csv_path = args.csv or (os.path.join(DATA_DIR, DEFAULT_FILES[system]) if system in DEFAULT_FILES else None)
        if not csv_path:
            parser.error(f"--csv is required for {system.value}")
        jobs.append(lambda db: ingest_csv_file(db, csv_path, system, batch_size=args.batch_size))
    elif args.csv:
        parser.error("--csv needs --system")
    if args.seed:
        jobs.append(lambda db: ingest_records(db, SNOMED_CT_SEED, CodeSystem.SNOMED, batch_size=args.batch_size))
        jobs.append(lambda db: ingest_records(db, LOINC_SEED, CodeSystem.LOINC, batch_size=args.batch_size))
    if not jobs:
        parser.error("nothing to load: pass --system and/or --seed")

    models.Base.metadata.create_all(bind=engine)
    failed = 0
    db = SessionLocal()
    try:
        for job in jobs:
            report = job(db)
            _print_report(report)
            failed += report.failed
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Reference data load aborted: %s", exc)
        return 1
    finally:
        db.close()
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
