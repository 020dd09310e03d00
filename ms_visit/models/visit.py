"""
Modelo de Visita (Visit) y su bitácora de actividades (VisitActivity)
"""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Numeric, JSON,
    CheckConstraint, Index, UniqueConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base


class Visit(Base):
    """
    Modelo de Visita - Encuentro de un agente con un cliente

    Invariante: como máximo una visita IN_PROGRESS por agente. Lo garantiza
    el índice único parcial uq_visits_agent_in_progress.
    """

    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    # Referencia al usuario de MS-AUTH (sin FK por ser externa)
    agent_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(20), default="PLANNED", nullable=False, index=True)

    # Planificación y ejecución
    planned_start_time = Column(DateTime(timezone=True), nullable=True)
    planned_end_time = Column(DateTime(timezone=True), nullable=True)
    actual_start_time = Column(DateTime(timezone=True), nullable=True)
    actual_end_time = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=True)

    # GPS capturado al llegar y al salir
    start_latitude = Column(Numeric(10, 8), nullable=True)
    start_longitude = Column(Numeric(11, 8), nullable=True)
    start_accuracy = Column(Numeric(10, 2), nullable=True)
    start_distance_meters = Column(Numeric(12, 2), nullable=True)
    location_valid = Column(Boolean, nullable=True)
    end_latitude = Column(Numeric(10, 8), nullable=True)
    end_longitude = Column(Numeric(11, 8), nullable=True)
    end_accuracy = Column(Numeric(10, 2), nullable=True)

    # Snapshot de requisitos calculado al iniciar
    required_activities = Column(JSON, nullable=True)

    notes = Column(Text, nullable=True)
    cancelled_reason = Column(Text, nullable=True)
    failed_reason = Column(Text, nullable=True)
    fraud_risk = Column(String(20), nullable=True)

    # Sincronización offline
    sync_status = Column(String(10), default="SYNCED", nullable=False)
    sync_errors = Column(JSON, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    activities = relationship(
        "VisitActivity",
        back_populates="visit",
        order_by="VisitActivity.sequence",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PLANNED', 'IN_PROGRESS', 'COMPLETED', 'FAILED', 'CANCELLED')",
            name="check_visit_status"
        ),
        CheckConstraint("sync_status IN ('LOCAL', 'SYNCED', 'ERROR')", name="check_visit_sync_status"),
        Index(
            "uq_visits_agent_in_progress",
            "agent_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    def __repr__(self):
        return f"<Visit(id={self.id}, agent={self.agent_id}, customer={self.customer_id}, status={self.status})>"


class VisitActivity(Base):
    """
    Actividad tipada y con timestamp dentro de una visita
    (arrival, photo, survey, sale, audit, departure)
    """

    __tablename__ = "visit_activities"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    visit_id = Column(Integer, ForeignKey("visits.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    activity_type = Column(String(20), nullable=False)
    required = Column(Boolean, default=False, nullable=False)
    completed = Column(Boolean, default=True, nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)
    # ID de la foto, respuesta de encuesta o venta asociada
    reference_id = Column(Integer, nullable=True)
    data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    visit = relationship("Visit", back_populates="activities")

    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('arrival', 'photo', 'survey', 'sale', 'audit', 'departure')",
            name="check_activity_type"
        ),
        UniqueConstraint("visit_id", "sequence", name="uq_visit_activity_sequence"),
    )

    def __repr__(self):
        return f"<VisitActivity(visit={self.visit_id}, seq={self.sequence}, type={self.activity_type})>"
