"""
Registro de eventos offline aplicados (idempotencia por visita)
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from .database import Base


class VisitSyncEvent(Base):

    __tablename__ = "visit_sync_events"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    visit_id = Column(Integer, ForeignKey("visits.id", ondelete="CASCADE"), nullable=False, index=True)
    idempotency_key = Column(String(100), nullable=False)
    event_type = Column(String(20), nullable=False)
    client_timestamp = Column(DateTime(timezone=True), nullable=False)
    applied_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("visit_id", "idempotency_key", name="uq_visit_sync_event_key"),
    )

    def __repr__(self):
        return f"<VisitSyncEvent(visit={self.visit_id}, key={self.idempotency_key}, type={self.event_type})>"
