"""
Validación de respuestas de encuesta contra el esquema de preguntas
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence


@dataclass(frozen=True)
class QuestionError:
    question_id: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"question_id": self.question_id, "message": self.message}


@dataclass
class SurveyValidationResult:
    valid: bool
    errors: List[QuestionError] = field(default_factory=list)
    answered: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "answered": self.answered,
            "errors": [error.as_dict() for error in self.errors],
        }


def _is_blank(answer: Any) -> bool:
    if answer is None:
        return True
    if isinstance(answer, str) and not answer.strip():
        return True
    if isinstance(answer, (list, tuple)) and not answer:
        return True
    return False


def _check_answer(question: Mapping[str, Any], answer: Any) -> str:
    """Devuelve el mensaje de error, o cadena vacía si la respuesta es válida"""
    question_type = question.get("type")

    if question_type == "multiple_choice":
        options = question.get("options") or []
        selected = answer if isinstance(answer, list) else [answer]
        invalid = [value for value in selected if value not in options]
        if invalid:
            return f"Opción(es) inválida(s): {', '.join(map(str, invalid))}"
        return ""

    if question_type == "rating":
        scale = int(question.get("scale") or 5)
        if isinstance(answer, bool) or not isinstance(answer, int):
            return "La calificación debe ser un número entero"
        if not 1 <= answer <= scale:
            return f"La calificación debe estar entre 1 y {scale}"
        return ""

    if question_type == "number":
        if isinstance(answer, bool) or not isinstance(answer, (int, float)):
            return "La respuesta debe ser un número"
        return ""

    if question_type == "yes_no":
        if not isinstance(answer, bool):
            return "La respuesta debe ser verdadero o falso"
        return ""

    if question_type in ("text", "photo"):
        if not isinstance(answer, (str, int)):
            return "La respuesta debe ser un texto o una referencia a una foto"
        return ""

    return f"Tipo de pregunta no soportado: {question_type}"


def validate_responses(questions: Sequence[Mapping[str, Any]], responses: Sequence[Mapping[str, Any]]) -> SurveyValidationResult:
    """
    Valida respuestas [{question_id, answer}] contra el esquema

    Reporta todos los errores por pregunta, no solo el primero.
    """
    by_id = {str(question.get("id")): question for question in questions}
    answers: Dict[str, Any] = {}
    errors: List[QuestionError] = []

    for response in responses:
        question_id = str(response.get("question_id"))
        if question_id not in by_id:
            errors.append(QuestionError(question_id, "Pregunta desconocida"))
            continue
        if question_id in answers:
            errors.append(QuestionError(question_id, "Pregunta respondida más de una vez"))
            continue
        answers[question_id] = response.get("answer")

    for question_id, question in by_id.items():
        answer = answers.get(question_id)
        if _is_blank(answer):
            if question.get("required", False):
                errors.append(QuestionError(question_id, "La respuesta es requerida"))
            continue
        message = _check_answer(question, answer)
        if message:
            errors.append(QuestionError(question_id, message))

    answered = sum(1 for answer in answers.values() if not _is_blank(answer))
    return SurveyValidationResult(valid=not errors, errors=errors, answered=answered)
