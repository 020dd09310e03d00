"""
Tests de la máquina de estados de la visita
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from conftest import CUSTOMER_LAT, CUSTOMER_LON, OTHER_AGENT_ID, COMPANY_ID, make_customer, make_survey

from ms_visit.constants import VisitStatus
from ms_visit.exceptions import ConflictError, IncompleteVisitError, NotFoundError, ValidationError
from ms_visit.models import Visit, VisitPhoto
from ms_visit.services import visit_workflow
from ms_visit.services.visit_workflow import AgentContext


def _loc(lat=CUSTOMER_LAT, lon=CUSTOMER_LON, accuracy=None):
    return SimpleNamespace(latitude=lat, longitude=lon, accuracy=accuracy)


def _photo(db, ctx, visit_id, content=b"jpeg-bytes"):
    return visit_workflow.record_photo(db, ctx, visit_id, content, "shelf.jpg", "image/jpeg")


def test_start_creates_in_progress_visit_with_arrival(db_session, ctx, customer):
    result = visit_workflow.start_visit(db_session, ctx, customer.id, _loc())

    visit = result.visit
    assert visit.status == VisitStatus.IN_PROGRESS.value
    assert visit.location_valid is True
    assert [a.activity_type for a in visit.activities] == ["arrival"]
    assert visit.activities[0].required is True
    assert [r.activity_type.value for r in result.requirements] == ["arrival", "photo", "departure"]


def test_start_outside_geofence_only_warns(db_session, ctx, customer):
    result = visit_workflow.start_visit(db_session, ctx, customer.id, _loc(lat=CUSTOMER_LAT + 0.018))

    assert result.visit.status == VisitStatus.IN_PROGRESS.value
    assert result.location_validation.valid is False
    assert result.location_validation.warnings
    assert result.visit.location_valid is False


def test_low_gps_accuracy_adds_warning(db_session, ctx, customer):
    result = visit_workflow.start_visit(db_session, ctx, customer.id, _loc(accuracy=250))
    assert result.location_validation.valid is True
    assert "Precisión GPS insuficiente (>100m)" in result.location_validation.warnings


def test_unknown_customer_is_not_found(db_session, ctx):
    with pytest.raises(NotFoundError):
        visit_workflow.start_visit(db_session, ctx, 999, _loc())


def test_customer_of_other_company_is_not_found(db_session, ctx):
    foreign = make_customer(db_session, company_id=COMPANY_ID + 1)
    with pytest.raises(NotFoundError):
        visit_workflow.start_visit(db_session, ctx, foreign.id, _loc())


def test_second_start_conflicts(db_session, ctx, customer):
    first = visit_workflow.start_visit(db_session, ctx, customer.id, _loc())
    with pytest.raises(ConflictError) as exc:
        visit_workflow.start_visit(db_session, ctx, customer.id, _loc())
    assert exc.value.details["active_visit_id"] == first.visit.id


def test_racing_start_is_rejected_by_unique_index(db_session, ctx, customer, monkeypatch):
    visit_workflow.start_visit(db_session, ctx, customer.id, _loc())
    # Simula la carrera: el pre-check no ve la visita activa del otro request
    monkeypatch.setattr(visit_workflow, "find_active_visit", lambda db, ctx: None)

    with pytest.raises(ConflictError):
        visit_workflow.start_visit(db_session, ctx, customer.id, _loc())

    active = db_session.query(Visit).filter(Visit.status == VisitStatus.IN_PROGRESS.value).count()
    assert active == 1


def test_other_agent_can_start_concurrently(db_session, ctx, customer):
    visit_workflow.start_visit(db_session, ctx, customer.id, _loc())
    other = AgentContext(company_id=COMPANY_ID, agent_id=OTHER_AGENT_ID)
    result = visit_workflow.start_visit(db_session, other, customer.id, _loc())
    assert result.visit.agent_id == OTHER_AGENT_ID


def test_start_planned_visit(db_session, ctx, customer):
    planned = visit_workflow.plan_visit(db_session, ctx, customer.id)
    assert planned.status == VisitStatus.PLANNED.value

    result = visit_workflow.start_visit(db_session, ctx, customer.id, _loc(), visit_id=planned.id)
    assert result.visit.id == planned.id
    assert result.visit.status == VisitStatus.IN_PROGRESS.value


def test_plan_rejects_inverted_window(db_session, ctx, customer):
    start = datetime(2026, 3, 2, 10, tzinfo=timezone.utc)
    with pytest.raises(ValidationError):
        visit_workflow.plan_visit(db_session, ctx, customer.id, start, start - timedelta(minutes=5))


def test_complete_requires_two_photos(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    _photo(db_session, ctx, visit.id)

    with pytest.raises(IncompleteVisitError) as exc:
        visit_workflow.complete_visit(db_session, ctx, visit.id)

    assert exc.value.missing == ["At least 2 photos required"]
    db_session.refresh(visit)
    assert visit.status == VisitStatus.IN_PROGRESS.value


def test_key_account_with_one_photo_lists_every_gap(db_session, ctx, key_account):
    visit = visit_workflow.start_visit(db_session, ctx, key_account.id, _loc()).visit
    _photo(db_session, ctx, visit.id)

    with pytest.raises(IncompleteVisitError) as exc:
        visit_workflow.complete_visit(db_session, ctx, visit.id)

    assert "At least 2 photos required" in exc.value.missing
    assert "At least 1 survey required" in exc.value.missing
    assert "At least 1 audit required" in exc.value.missing


def test_complete_key_account_in_any_order(db_session, ctx, key_account):
    survey = make_survey(db_session)
    visit = visit_workflow.start_visit(db_session, ctx, key_account.id, _loc()).visit

    visit_workflow.record_audit(db_session, ctx, visit.id, [{"asset_code": "FRIDGE-1", "present": True}])
    _photo(db_session, ctx, visit.id, b"one")
    visit_workflow.record_survey(db_session, ctx, visit.id, survey.id, [
        {"question_id": "q1", "answer": "Acme"},
        {"question_id": "q2", "answer": 5},
    ])
    _photo(db_session, ctx, visit.id, b"two")

    result = visit_workflow.complete_visit(db_session, ctx, visit.id, departure_location=_loc())

    assert result.visit.status == VisitStatus.COMPLETED.value
    assert result.summary["photos_count"] == 2
    assert result.summary["activity_counts"]["departure"] == 1
    assert result.departure_validation.valid is True
    assert [a.sequence for a in result.visit.activities] == [1, 2, 3, 4, 5, 6]


def test_completed_visit_is_terminal(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    _photo(db_session, ctx, visit.id, b"one")
    _photo(db_session, ctx, visit.id, b"two")
    visit_workflow.complete_visit(db_session, ctx, visit.id)

    with pytest.raises(NotFoundError):
        visit_workflow.complete_visit(db_session, ctx, visit.id)
    with pytest.raises(NotFoundError):
        _photo(db_session, ctx, visit.id, b"three")
    with pytest.raises(ConflictError):
        visit_workflow.cancel_visit(db_session, ctx, visit.id, "late")

    # Las notas siguen permitidas
    visit = visit_workflow.append_note(db_session, ctx, visit.id, "Follow up next week")
    assert "Follow up next week" in visit.notes


def test_cancel_in_progress_visit_frees_agent(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    cancelled = visit_workflow.cancel_visit(db_session, ctx, visit.id, "Store closed")

    assert cancelled.status == VisitStatus.CANCELLED.value
    assert cancelled.cancelled_reason == "Store closed"
    visit_workflow.start_visit(db_session, ctx, customer.id, _loc())


def test_fail_planned_visit(db_session, ctx, customer):
    planned = visit_workflow.plan_visit(db_session, ctx, customer.id)
    failed = visit_workflow.fail_visit(db_session, ctx, planned.id, "No access")
    assert failed.status == VisitStatus.FAILED.value
    assert failed.failed_reason == "No access"


def test_visit_of_other_agent_is_not_found(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    other = AgentContext(company_id=COMPANY_ID, agent_id=OTHER_AGENT_ID)
    with pytest.raises(NotFoundError):
        visit_workflow.get_visit(db_session, other, visit.id)


def test_arrival_cannot_be_recorded_twice(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    with pytest.raises(ConflictError):
        visit_workflow.append_activity(
            visit, visit_workflow.ActivityType.ARRIVAL, recorded_at=visit_workflow.utcnow()
        )


def test_photo_keeps_only_metadata_and_flags_duplicates(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    first = _photo(db_session, ctx, visit.id, b"same-bytes")
    second = _photo(db_session, ctx, visit.id, b"same-bytes")

    assert first.checksum == second.checksum
    assert first.analysis_status == "unavailable"
    assert first.size_bytes == len(b"same-bytes")
    db_session.refresh(visit)
    assert visit.activities[-1].data["duplicate_of"] == first.id
    assert db_session.query(VisitPhoto).count() == 2


def test_empty_photo_is_rejected(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    with pytest.raises(ValidationError):
        _photo(db_session, ctx, visit.id, b"")


def test_invalid_survey_is_rejected_without_writes(db_session, ctx, customer):
    survey = make_survey(db_session)
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit

    with pytest.raises(ValidationError) as exc:
        visit_workflow.record_survey(db_session, ctx, visit.id, survey.id, [{"question_id": "q1", "answer": "Nope"}])

    question_ids = {error["question_id"] for error in exc.value.details["errors"]}
    assert question_ids == {"q1", "q2"}
    db_session.refresh(visit)
    assert [a.activity_type for a in visit.activities] == ["arrival"]


def test_empty_audit_is_rejected(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    with pytest.raises(ValidationError):
        visit_workflow.record_audit(db_session, ctx, visit.id, [])


def test_photo_reused_on_a_later_visit_is_flagged(db_session, ctx, customer):
    first_visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    original = _photo(db_session, ctx, first_visit.id, b"storefront")
    _photo(db_session, ctx, first_visit.id, b"shelf")
    visit_workflow.complete_visit(db_session, ctx, first_visit.id)

    second_visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    _photo(db_session, ctx, second_visit.id, b"storefront")

    db_session.refresh(second_visit)
    assert second_visit.activities[-1].data["duplicate_of"] == original.id


def test_same_photo_from_another_agent_is_not_a_duplicate(db_session, ctx, customer):
    visit = visit_workflow.start_visit(db_session, ctx, customer.id, _loc()).visit
    _photo(db_session, ctx, visit.id, b"storefront")

    other = AgentContext(company_id=COMPANY_ID, agent_id=OTHER_AGENT_ID)
    other_visit = visit_workflow.start_visit(db_session, other, customer.id, _loc()).visit
    _photo(db_session, other, other_visit.id, b"storefront")

    db_session.refresh(other_visit)
    assert other_visit.activities[-1].data["duplicate_of"] is None
