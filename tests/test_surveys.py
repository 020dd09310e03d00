"""
Tests de validación de respuestas de encuesta
"""
from ms_visit.services.surveys import validate_responses

QUESTIONS = [
    {"id": "q1", "type": "multiple_choice", "options": ["Acme", "Other"], "required": True},
    {"id": "q2", "type": "rating", "scale": 5, "required": True},
    {"id": "q3", "type": "yes_no", "required": False},
    {"id": "q4", "type": "number", "required": False},
    {"id": "q5", "type": "text", "required": False},
]


def _errors(result):
    return {error.question_id: error.message for error in result.errors}


def test_valid_responses():
    result = validate_responses(QUESTIONS, [
        {"question_id": "q1", "answer": "Acme"},
        {"question_id": "q2", "answer": 4},
        {"question_id": "q3", "answer": False},
        {"question_id": "q4", "answer": 12.5},
    ])
    assert result.valid is True
    assert result.errors == []
    assert result.answered == 4


def test_missing_required_answer():
    result = validate_responses(QUESTIONS, [{"question_id": "q1", "answer": "Acme"}])
    assert result.valid is False
    assert _errors(result) == {"q2": "La respuesta es requerida"}


def test_every_error_is_reported():
    result = validate_responses(QUESTIONS, [
        {"question_id": "q1", "answer": "Pepsi"},
        {"question_id": "q2", "answer": 9},
        {"question_id": "q3", "answer": "yes"},
        {"question_id": "q4", "answer": "many"},
        {"question_id": "q99", "answer": "?"},
    ])
    errors = _errors(result)
    assert errors["q1"].startswith("Opción(es) inválida(s)")
    assert errors["q2"] == "La calificación debe estar entre 1 y 5"
    assert errors["q3"] == "La respuesta debe ser verdadero o falso"
    assert errors["q4"] == "La respuesta debe ser un número"
    assert errors["q99"] == "Pregunta desconocida"


def test_duplicate_answer_is_rejected():
    result = validate_responses(QUESTIONS, [
        {"question_id": "q1", "answer": "Acme"},
        {"question_id": "q1", "answer": "Other"},
        {"question_id": "q2", "answer": 3},
    ])
    assert _errors(result) == {"q1": "Pregunta respondida más de una vez"}


def test_boolean_is_not_a_rating():
    result = validate_responses(QUESTIONS, [
        {"question_id": "q1", "answer": "Acme"},
        {"question_id": "q2", "answer": True},
    ])
    assert _errors(result) == {"q2": "La calificación debe ser un número entero"}


def test_numeric_question_ids_match_string_answers():
    result = validate_responses([{"id": 1, "type": "text", "required": True}], [{"question_id": "1", "answer": "ok"}])
    assert result.valid is True
