"""
Modelo de Foto de visita (VisitPhoto)
Solo metadatos y resumen del análisis; los píxeles nunca se procesan aquí
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, JSON
from sqlalchemy.sql import func
from .database import Base


class VisitPhoto(Base):

    __tablename__ = "visit_photos"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    visit_id = Column(Integer, ForeignKey("visits.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(Integer, nullable=False, index=True)

    photo_type = Column(String(50), default="general", nullable=False)
    filename = Column(String(255), nullable=True)
    content_type = Column(String(100), nullable=True)
    size_bytes = Column(Integer, nullable=False)
    checksum = Column(String(64), nullable=False, index=True)

    latitude = Column(Numeric(10, 8), nullable=True)
    longitude = Column(Numeric(11, 8), nullable=True)
    taken_at = Column(DateTime(timezone=True), nullable=False)

    # Resumen del servicio de análisis de imagen (completed | unavailable)
    analysis_status = Column(String(20), default="unavailable", nullable=False)
    quality_score = Column(Numeric(5, 2), nullable=True)
    brand_matches = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<VisitPhoto(id={self.id}, visit={self.visit_id}, type={self.photo_type})>"
