"""
Schemas de respuestas de encuesta
"""
from pydantic import Field
from typing import Any, Dict, List, Optional, Union
from datetime import datetime

from .common import CamelModel


class SurveyAnswer(CamelModel):
    question_id: Union[int, str] = Field(..., description="ID de la pregunta en el esquema de la encuesta")
    answer: Any = Field(None, description="Respuesta; el tipo depende de la pregunta")


class SurveySubmit(CamelModel):
    survey_id: int = Field(..., gt=0, description="ID de la encuesta")
    responses: List[SurveyAnswer] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "surveyId": 3,
                "responses": [
                    {"questionId": "q1", "answer": "Coca-Cola"},
                    {"questionId": "q2", "answer": 4},
                    {"questionId": "q3", "answer": True}
                ]
            }
        }

    def answers(self) -> List[Dict[str, Any]]:
        """Respuestas en el formato interno [{question_id, answer}]"""
        return [{"question_id": str(r.question_id), "answer": r.answer} for r in self.responses]


class SurveyResponseOut(CamelModel):
    id: int
    survey_id: int
    visit_id: Optional[int] = None
    responses: List[Dict[str, Any]]
    submitted_at: datetime


class QuestionErrorOut(CamelModel):
    question_id: str
    message: str


class SurveyValidationOut(CamelModel):
    valid: bool
    answered: int
    errors: List[QuestionErrorOut] = Field(default_factory=list)


class SurveySubmitResponse(CamelModel):
    survey_response: SurveyResponseOut
    validation_result: SurveyValidationOut
