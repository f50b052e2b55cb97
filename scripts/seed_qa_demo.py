"""
데모 데이터 생성 + QA 워크플로 전 경로 실행.

  - 일반 판매자 상품 3개: verified / rejected / for_revision 경로
  - trusted_brand 판매자 상품 1개: 자동 verified (QA 생략)

실행: 프로젝트 루트에서 python scripts/seed_qa_demo.py
"""

import logging
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import settings
from services.qa_service import QAService
from storage.database import create_store_engine, init_db, make_session_factory
from storage.errors import StoreUnavailable
from storage.models import TierLevel

logger = logging.getLogger("seed_qa_demo")

# StoreUnavailable은 transition 전체가 원자적이므로 호출 단위로 재시도해도 안전하다.
store_retry = retry(
    retry=retry_if_exception_type(StoreUnavailable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def _create_product(qa: QAService, seller_id: str, category_id: str, name: str) -> str:
    stamp = int(time.time() * 1000)
    return qa.catalog.create_product(
        seller_id=seller_id,
        name=f"{name} - {stamp}",
        price=1500.00,
        category_id=category_id,
        description="Demo product for QA flow",
        variant_label_1="Size",
        variant_label_2="Color",
        images=[
            {"image_url": "https://placehold.co/400x400?text=Main"},
            {"image_url": "https://placehold.co/400x400?text=Side"},
        ],
        variants=[
            {
                "sku": f"DEMO-SM-RED-{stamp}",
                "variant_name": "Small - Red",
                "size": "Small",
                "color": "Red",
                "stock": 50,
            },
            {
                "sku": f"DEMO-LG-BLUE-{stamp}",
                "variant_name": "Large - Blue",
                "size": "Large",
                "color": "Blue",
                "price": 1700.00,
                "stock": 30,
            },
        ],
    )


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    engine = create_store_engine()
    init_db(engine)
    qa = QAService(make_session_factory(engine))

    submit = store_retry(qa.submit_for_review)
    approve_digital = store_retry(qa.approve_digital)
    submit_sample = store_retry(qa.submit_sample)
    verify = store_retry(qa.verify)
    reject = store_retry(qa.reject)
    request_revision = store_retry(qa.request_revision)

    stamp = int(time.time())
    category_id = qa.catalog.create_category(f"QA Demo Category {stamp}")
    seller_id = qa.catalog.create_seller("Demo Fashion Store", "Maria Demo")
    brand_id = qa.catalog.create_seller("Demo Trusted Brand", "Brand Owner")
    qa.catalog.set_seller_tier(
        brand_id, TierLevel.TRUSTED_BRAND, bypasses_assessment=True
    )

    # 1. happy path
    product_id = _create_product(qa, seller_id, category_id, "Verified Tee")
    a = submit(product_id, submitted_by=seller_id)
    approve_digital(a["id"], actor="admin")
    submit_sample(a["id"], "Drop-off by Courier", actor=seller_id)
    a = verify(a["id"], actor="admin")
    print(f"[1] {product_id[:8]}... → {a['status']}")

    # 2. rejection
    product_id = _create_product(qa, seller_id, category_id, "Rejected Tee")
    a = submit(product_id, submitted_by=seller_id)
    a = reject(
        a["id"],
        "Does not meet quality standards",
        vendor_submitted_category="Apparel",
        actor="admin",
    )
    print(f"[2] {product_id[:8]}... → {a['status']}")

    # 3. revision
    product_id = _create_product(qa, seller_id, category_id, "Revision Tee")
    a = submit(product_id, submitted_by=seller_id)
    a = request_revision(
        a["id"],
        "Please update product description and add more images",
        actor="admin",
    )
    print(f"[3] {product_id[:8]}... → {a['status']}")

    # 4. trusted brand bypass
    product_id = _create_product(qa, brand_id, category_id, "Brand Tee")
    a = submit(product_id, submitted_by=brand_id)
    print(f"[4] {product_id[:8]}... → {a['status']} (bypass)")

    rows = qa.seller_dashboard(seller_id)
    print(f"[5] 판매자 대시보드: {len(rows)}건")


if __name__ == "__main__":
    main()
