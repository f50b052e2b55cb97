"""
products.approval_status ↔ product_assessments.status 정합성 점검.

실행: python scripts/check_integrity.py [--repair]
"""

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import settings
from services.integrity_service import IntegrityService
from services.status_projector import ProductStatusProjector
from storage.database import create_store_engine, init_db, make_session_factory


def main() -> int:
    parser = argparse.ArgumentParser(description="Check QA data integrity")
    parser.add_argument(
        "--repair", action="store_true",
        help="re-apply the status projection to drifted products",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    engine = create_store_engine()
    init_db(engine)
    session_factory = make_session_factory(engine)
    service = IntegrityService(session_factory, ProductStatusProjector(session_factory))

    report = service.check()
    for item in report["status_drift"]:
        print(
            f"[drift] product {item['product_id']}: "
            f"{item['approval_status']} (expected {item['expected_approval_status']}, "
            f"assessment {item['assessment_status']})"
        )
    for product_id in report["orphan_products"]:
        print(f"[orphan] product {product_id} has no assessment")

    if report["ok"]:
        print("OK")
        return 0

    if args.repair and report["status_drift"]:
        repaired = service.repair_drift()
        print(f"repaired {repaired} products")
    return 1


if __name__ == "__main__":
    sys.exit(main())
