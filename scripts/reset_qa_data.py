"""
QA 평가 데이터 초기화: 모든 assessment와 감사 기록(approval/rejection/revision/logistics) 삭제.
상품(products)은 유지되며, --products 옵션을 주면 상품·이미지·변형까지 함께 삭제한다.

실행: 프로젝트 루트에서 가상환경 활성화 후
      python scripts/reset_qa_data.py [--products]
"""

import argparse
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 path에 추가
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import settings
from storage.database import create_store_engine, init_db, make_session_factory
from storage.models import Product, ProductAssessment
from storage.repository import get_db, teardown_assessment, teardown_product


def main() -> None:
    parser = argparse.ArgumentParser(description="Reset QA assessment data")
    parser.add_argument(
        "--products", action="store_true",
        help="also delete products, images and variants",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    engine = create_store_engine()
    init_db(engine)
    session_factory = make_session_factory(engine)

    # 1. assessment + 감사 기록 삭제 (감사 기록 먼저 - FK)
    with get_db(session_factory) as db:
        assessment_ids = [row[0] for row in db.query(ProductAssessment.id).all()]

    removed = 0
    for assessment_id in assessment_ids:
        removed += teardown_assessment(session_factory, assessment_id)
    print(f"[1] assessment {len(assessment_ids)}건, 감사 기록 {removed}건 삭제")

    # 2. 상품 삭제 (옵션)
    if args.products:
        with get_db(session_factory) as db:
            product_ids = [row[0] for row in db.query(Product.id).all()]
        for product_id in product_ids:
            teardown_product(session_factory, product_id)
        print(f"[2] 상품 {len(product_ids)}건 삭제")
    else:
        print("[2] 상품 유지 (스킵)")


if __name__ == "__main__":
    main()
