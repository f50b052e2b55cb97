"""
공용 pytest fixture: 테스트마다 새 SQLite 파일 DB를 만든다.

실행: 프로젝트 루트에서 python -m pytest tests -v
"""

import itertools
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.qa_service import QAService
from storage.database import create_store_engine, init_db, make_session_factory
from storage.models import ProductAssessment
from storage.repository import get_db

BYPASS_TIERS = ("premium_outlet", "trusted_brand")


@pytest.fixture
def engine(tmp_path):
    engine = create_store_engine(f"sqlite:///{tmp_path / 'qa.db'}", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def qa(session_factory):
    return QAService(session_factory, bypass_tiers=BYPASS_TIERS)


@pytest.fixture
def catalog(qa):
    return qa.catalog


@pytest.fixture
def category_id(catalog):
    return catalog.create_category("QA Test Category")


@pytest.fixture
def seller_id(catalog):
    return catalog.create_seller("QA Test Store", "Tess Seller")


@pytest.fixture
def make_product(catalog, seller_id, category_id):
    """상품 + 이미지 2개 + 변형 2개 생성 후 product id 반환."""
    counter = itertools.count(1)

    def _make(seller: str | None = None, name: str = "QA Test Product") -> str:
        n = next(counter)
        return catalog.create_product(
            seller_id=seller or seller_id,
            name=f"{name} {n}",
            price=1500.00,
            category_id=category_id,
            description="Test product for QA flow validation",
            variant_label_1="Size",
            variant_label_2="Color",
            images=[
                {"image_url": "https://placehold.co/400x400?text=Main"},
                {"image_url": "https://placehold.co/400x400?text=Side"},
            ],
            variants=[
                {
                    "sku": f"QA-TEST-SM-RED-{n}-{seller or seller_id}",
                    "variant_name": "Small - Red",
                    "size": "Small",
                    "color": "Red",
                    "stock": 50,
                },
                {
                    "sku": f"QA-TEST-LG-BLUE-{n}-{seller or seller_id}",
                    "variant_name": "Large - Blue",
                    "size": "Large",
                    "color": "Blue",
                    "price": 1700.00,
                    "stock": 30,
                },
            ],
        )

    return _make


@pytest.fixture
def force_status(session_factory):
    """테스트 전용: 엔진을 거치지 않고 status를 직접 기록."""

    def _force(assessment_id: str, status: str) -> None:
        with get_db(session_factory) as db:
            db.query(ProductAssessment).filter_by(id=assessment_id).update(
                {"status": status}, synchronize_session=False
            )

    return _force
