"""
Modelo de Cliente (Customer)
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.sql import func
from .database import Base
from ..constants import CustomerType


class Customer(Base):
    """
    Modelo de Cliente - Punto de venta visitado por los agentes
    La coordenada es fija y se usa para el geofencing al iniciar/cerrar visitas
    """

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    contact_person = Column(String(255), nullable=True)
    address = Column(String, nullable=True)
    phone = Column(String(20), nullable=True)

    # Coordenadas geográficas
    latitude = Column(Numeric(10, 8), nullable=False)
    longitude = Column(Numeric(11, 8), nullable=False)

    # STANDARD o KEY_ACCOUNT
    customer_type = Column(String(30), default=CustomerType.STANDARD.value, nullable=False)

    # Crédito
    credit_limit = Column(Numeric(12, 2), default=0, nullable=False)
    credit_balance = Column(Numeric(12, 2), default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_key_account(self) -> bool:
        return self.customer_type == CustomerType.KEY_ACCOUNT.value

    def __repr__(self):
        return f"<Customer(id={self.id}, name={self.name}, type={self.customer_type})>"
