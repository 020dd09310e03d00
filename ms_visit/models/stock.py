"""
Modelo de Stock del agente (AgentStock)
Inventario que el agente lleva consigo para vender durante las visitas
"""
from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func
from .database import Base


class AgentStock(Base):
    """
    Libro de cantidades por agente y producto.
    Solo lo modifica el compositor de ventas, nunca puede quedar negativo.
    """

    __tablename__ = "agent_stock"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    agent_id = Column(Integer, nullable=False, index=True)
    # Producto del catálogo externo, se guarda el nombre para mostrarlo
    product_id = Column(Integer, nullable=False)
    product_name = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="check_agent_stock_non_negative"),
        UniqueConstraint("company_id", "agent_id", "product_id", name="uq_agent_stock_product"),
    )

    def __repr__(self):
        return f"<AgentStock(agent={self.agent_id}, product={self.product_id}, quantity={self.quantity})>"
