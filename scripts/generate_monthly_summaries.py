#!/usr/bin/env python
"""Generate monthly summaries from the command line.

Runs the same bulk orchestration as ``POST /api/admin/monthly-summaries/generate-all``
(or a single employee with ``--employee-id``) and prints the batch result as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from decimal import Decimal
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.db import SessionLocal
from app.logging_utils import setup_json_logging
from app.security import SYSTEM_ACTOR
from app.services.bulk import BulkOrchestrator
from app.settings import get_settings


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate monthly summaries for a period.")
    parser.add_argument("--month", type=int, required=True)
    parser.add_argument("--year", type=int, required=True)
    parser.add_argument("--employee-id", type=int, action="append", dest="employee_ids")
    parser.add_argument("--tax-percentage", type=Decimal, default=None)
    parser.add_argument("--concurrency", type=int, default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_json_logging(get_settings().log_level)
    orchestrator = BulkOrchestrator(SessionLocal, concurrency=args.concurrency)
    result = asyncio.run(
        orchestrator.bulk_generate(
            args.month,
            args.year,
            SYSTEM_ACTOR,
            tax_percentage=args.tax_percentage,
            employee_ids=args.employee_ids,
        )
    )
    payload = {
        "month": result.month,
        "year": result.year,
        "counts": result.counts(),
        "succeeded": [item.to_dict() for item in result.succeeded],
        "failed": [item.to_dict() for item in result.failed],
        "skipped": [item.to_dict() for item in result.skipped],
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0 if not result.failed else 1


if __name__ == "__main__":
    raise SystemExit(main())
