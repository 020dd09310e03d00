"""
Modelos de Encuesta (Survey) y Respuesta (SurveyResponse)
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON
from sqlalchemy.sql import func
from .database import Base


class Survey(Base):
    """
    Encuesta con su esquema de preguntas:
    [{"id", "question", "type", "options", "scale", "required"}]
    """

    __tablename__ = "surveys"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    questions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Survey(id={self.id}, title={self.title})>"


class SurveyResponse(Base):
    """Respuesta inmutable, validada contra el esquema vigente al enviarse"""

    __tablename__ = "survey_responses"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    survey_id = Column(Integer, ForeignKey("surveys.id"), nullable=False, index=True)
    visit_id = Column(Integer, ForeignKey("visits.id", ondelete="SET NULL"), nullable=True, index=True)
    agent_id = Column(Integer, nullable=False, index=True)
    responses = Column(JSON, nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
