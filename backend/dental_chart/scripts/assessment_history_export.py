from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dental_chart.core.logging_config import configure_logging
from dental_chart.core.settings import settings
from dental_chart.db.session import SessionLocal
from dental_chart.models.assessment import AssessmentDomain
from dental_chart.services.assessment_flow import AssessmentService
from dental_chart.services.drafts import DraftCache
from dental_chart.services.history_csv import write_history_csv
from dental_chart.services.snapshot_store import SnapshotStore, SqlAlchemyDocumentStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export decoded assessment history for one patient as CSV (newest first)."
    )
    parser.add_argument("--patient-id", required=True, help="Patient identifier.")
    parser.add_argument(
        "--domain",
        required=True,
        choices=[domain.value for domain in AssessmentDomain],
        help="Assessment domain to export.",
    )
    parser.add_argument("--out", help="Output CSV path (defaults to stdout).")
    parser.add_argument(
        "--limit", type=int, default=None, help="Max snapshots to export (default: all)."
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None, *, session_factory=SessionLocal) -> int:
    args = parse_args(argv)
    configure_logging(settings.log_level)

    session = session_factory()
    try:
        service = AssessmentService(SnapshotStore(SqlAlchemyDocumentStore(session)), DraftCache())
        entries = service.history(args.patient_id, args.domain, limit=args.limit)
    finally:
        session.close()

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with out_path.open("w", newline="", encoding="utf-8") as handle:
            count = write_history_csv(entries, handle)
        print(f"Wrote {count} snapshots to {out_path}")
    else:
        write_history_csv(entries, sys.stdout)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
