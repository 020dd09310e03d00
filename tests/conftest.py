"""
Fixtures compartidas para los tests de MS-VISIT-PY
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ms_visit.clients import get_fraud_client, get_image_analysis_client, get_notification_client
from ms_visit.clients.image_analysis_client import ImageAnalysis
from ms_visit.constants import CustomerType, RiskLevel
from ms_visit.exceptions import DependencyUnavailableError
from ms_visit.main import app
from ms_visit.models import AgentStock, Base, Customer, Survey, get_db
from ms_visit.services.visit_workflow import AgentContext
from ms_visit.utils.auth import get_current_user

# Base de datos de pruebas en memoria, compartida entre hilos del TestClient
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

COMPANY_ID = 1
AGENT_ID = 10
OTHER_AGENT_ID = 11

# Johannesburgo, punto de referencia de los clientes de prueba
CUSTOMER_LAT = -26.2041
CUSTOMER_LON = 28.0473


class FakeImageAnalysisClient:
    def __init__(self, analysis: Optional[ImageAnalysis] = None, fail: bool = False):
        self.analysis = analysis or ImageAnalysis(quality_score=0.92, brand_matches=[{"brand": "Acme", "confidence": 0.88}])
        self.fail = fail
        self.calls = 0

    async def analyze(self, content, filename, content_type):
        self.calls += 1
        if self.fail:
            raise DependencyUnavailableError("image-analysis", "Timeout del análisis de imagen")
        return self.analysis


class FakeFraudClient:
    def __init__(self, level: RiskLevel = RiskLevel.LOW, fail: bool = False):
        self.level = level
        self.fail = fail
        self.events: List[dict] = []

    async def classify(self, event):
        self.events.append(event)
        if self.fail:
            raise DependencyUnavailableError("fraud-risk", "Timeout del clasificador de fraude")
        return self.level


class FakeNotificationClient:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[dict] = []

    async def send(self, type, recipient, message, data=None):
        if self.fail:
            raise DependencyUnavailableError("notification", "Servicio de notificaciones no disponible")
        self.sent.append({"type": type, "recipient": recipient, "message": message, "data": data})


@pytest.fixture
def db_session():
    """Crear y limpiar base de datos antes de cada test"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def ctx():
    return AgentContext(company_id=COMPANY_ID, agent_id=AGENT_ID)


@pytest.fixture
def image_client():
    return FakeImageAnalysisClient()


@pytest.fixture
def fraud_client():
    return FakeFraudClient()


@pytest.fixture
def notification_client():
    return FakeNotificationClient()


@pytest.fixture
def current_user():
    return {"email": "agent@test.com", "role": "VENDEDOR", "user_id": AGENT_ID, "company_id": COMPANY_ID}


@pytest.fixture
def client(db_session, image_client, fraud_client, notification_client, current_user):
    """TestClient con la sesión, el usuario y los servicios externos reemplazados"""

    def override_get_db():
        yield db_session

    async def override_get_current_user():
        return current_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_image_analysis_client] = lambda: image_client
    app.dependency_overrides[get_fraud_client] = lambda: fraud_client
    app.dependency_overrides[get_notification_client] = lambda: notification_client

    yield TestClient(app)

    app.dependency_overrides.clear()


# ============================================================================
# DATOS DE PRUEBA
# ============================================================================

def make_customer(
    db,
    customer_type: str = CustomerType.STANDARD.value,
    credit_limit: str = "0",
    credit_balance: str = "0",
    company_id: int = COMPANY_ID,
    latitude: float = CUSTOMER_LAT,
    longitude: float = CUSTOMER_LON,
) -> Customer:
    customer = Customer(
        company_id=company_id,
        name="Spaza Mama Thandi",
        address="12 Market St, Johannesburg",
        latitude=latitude,
        longitude=longitude,
        customer_type=customer_type,
        credit_limit=Decimal(credit_limit),
        credit_balance=Decimal(credit_balance),
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def make_stock(db, product_id: int, quantity: int, agent_id: int = AGENT_ID, name: Optional[str] = None) -> AgentStock:
    row = AgentStock(
        company_id=COMPANY_ID,
        agent_id=agent_id,
        product_id=product_id,
        product_name=name or f"Product {product_id}",
        quantity=quantity,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def make_survey(db, questions=None) -> Survey:
    survey = Survey(
        company_id=COMPANY_ID,
        title="Shelf share",
        questions=questions if questions is not None else [
            {"id": "q1", "question": "Main brand on shelf?", "type": "multiple_choice",
             "options": ["Acme", "Other"], "required": True},
            {"id": "q2", "question": "Shelf condition", "type": "rating", "scale": 5, "required": True},
            {"id": "q3", "question": "Fridge present?", "type": "yes_no", "required": False},
        ],
    )
    db.add(survey)
    db.commit()
    db.refresh(survey)
    return survey


@pytest.fixture
def customer(db_session):
    return make_customer(db_session)


@pytest.fixture
def key_account(db_session):
    return make_customer(db_session, customer_type=CustomerType.KEY_ACCOUNT.value)
