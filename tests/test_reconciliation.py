"""
Tests de la reconciliación offline
"""
import asyncio
import base64
from datetime import datetime, timedelta, timezone

import pytest

from conftest import CUSTOMER_LAT, CUSTOMER_LON, FakeImageAnalysisClient, make_stock

from ms_visit.constants import VisitStatus
from ms_visit.exceptions import NotFoundError
from ms_visit.models import AgentStock, Visit, VisitSyncEvent
from ms_visit.schemas.sync import SyncEventIn
from ms_visit.services import visit_workflow
from ms_visit.services.reconciliation import OfflineReconciler

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
LOCATION = {"latitude": CUSTOMER_LAT, "longitude": CUSTOMER_LON}


def _event(key, type, minutes, payload=None):
    return SyncEventIn(
        idempotency_key=key,
        type=type,
        client_timestamp=T0 + timedelta(minutes=minutes),
        payload=payload or {},
    )


def _photo_payload(content: bytes):
    return {"contentBase64": base64.b64encode(content).decode(), "filename": "shelf.jpg", "contentType": "image/jpeg"}


def _reconcile(db, ctx, visit_id, events, image_client=None):
    reconciler = OfflineReconciler(db, ctx, image_client or FakeImageAnalysisClient())
    return asyncio.run(reconciler.reconcile(visit_id, events))


def _planned(db, ctx, customer):
    return visit_workflow.plan_visit(db, ctx, customer.id)


def _full_visit_events():
    return [
        _event("k-complete", "complete", 30, {"departureLocation": LOCATION}),
        _event("k-photo-2", "photo", 12, _photo_payload(b"two")),
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-photo-1", "photo", 5, _photo_payload(b"one")),
    ]


def test_events_are_applied_in_client_order(db_session, ctx, customer):
    visit = _planned(db_session, ctx, customer)

    report = _reconcile(db_session, ctx, visit.id, _full_visit_events())

    assert [r.idempotency_key for r in report.results] == ["k-start", "k-photo-1", "k-photo-2", "k-complete"]
    assert all(r.status == "applied" for r in report.results)
    assert report.as_dict()["sync_status"] == "SYNCED"

    db_session.refresh(visit)
    assert visit.status == VisitStatus.COMPLETED.value
    assert visit.sync_status == "SYNCED"
    assert visit.last_synced_at is not None
    assert visit_workflow.as_utc(visit.actual_start_time) == T0
    assert visit.duration_seconds == 30 * 60


def test_replaying_a_batch_is_a_no_op(db_session, ctx, customer):
    visit = _planned(db_session, ctx, customer)
    _reconcile(db_session, ctx, visit.id, _full_visit_events())

    report = _reconcile(db_session, ctx, visit.id, _full_visit_events())

    assert {r.status for r in report.results} == {"duplicate"}
    assert db_session.query(VisitSyncEvent).count() == 4
    db_session.refresh(visit)
    assert len(visit.activities) == 4
    assert visit.sync_status == "SYNCED"


def test_repeated_key_in_batch_is_duplicate(db_session, ctx, customer):
    visit = _planned(db_session, ctx, customer)
    events = [
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-note", "note", 1, {"text": "first"}),
        _event("k-note", "note", 2, {"text": "again"}),
    ]

    report = _reconcile(db_session, ctx, visit.id, events)

    assert [r.status for r in report.results] == ["applied", "applied", "duplicate"]
    db_session.refresh(visit)
    assert "again" not in visit.notes


def test_failed_event_does_not_stop_later_ones(db_session, ctx, customer):
    make_stock(db_session, product_id=1, quantity=5)
    visit = _planned(db_session, ctx, customer)
    events = [
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-sale", "sale", 5, {
            "items": [{"productId": 1, "quantity": 6, "unitPrice": "10"}],
            "paymentMethod": "CASH",
            "totalAmount": "60",
        }),
        _event("k-photo", "photo", 10, _photo_payload(b"shelf")),
    ]

    report = _reconcile(db_session, ctx, visit.id, events)

    statuses = {r.idempotency_key: r.status for r in report.results}
    assert statuses == {"k-start": "applied", "k-sale": "rejected", "k-photo": "applied"}
    rejected = next(r for r in report.results if r.status == "rejected")
    assert rejected.error["code"] == "VALIDATION_ERROR"
    assert rejected.error["shortages"][0]["shortBy"] == 1

    db_session.refresh(visit)
    assert visit.sync_status == "ERROR"
    assert visit.sync_errors[0]["idempotency_key"] == "k-sale"
    assert db_session.query(AgentStock).one().quantity == 5
    # El evento rechazado no queda en el libro de idempotencia
    keys = {row.idempotency_key for row in db_session.query(VisitSyncEvent).all()}
    assert keys == {"k-start", "k-photo"}


def test_rejected_event_can_be_retried(db_session, ctx, customer):
    make_stock(db_session, product_id=1, quantity=5)
    visit = _planned(db_session, ctx, customer)
    sale = {"items": [{"productId": 1, "quantity": 6, "unitPrice": "10"}], "paymentMethod": "CASH", "totalAmount": "60"}
    _reconcile(db_session, ctx, visit.id, [
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-sale", "sale", 5, sale),
    ])

    # El agente recarga stock y reintenta
    db_session.query(AgentStock).update({"quantity": 10})
    db_session.commit()
    report = _reconcile(db_session, ctx, visit.id, [_event("k-sale", "sale", 5, sale)])

    assert report.results[0].status == "applied"
    assert report.results[0].reference_id is not None
    db_session.refresh(visit)
    assert visit.sync_status == "SYNCED"
    assert visit.sync_errors is None
    assert db_session.query(AgentStock).one().quantity == 4


def test_invalid_payload_is_rejected(db_session, ctx, customer):
    visit = _planned(db_session, ctx, customer)
    report = _reconcile(db_session, ctx, visit.id, [
        _event("k-start", "start", 0, {"location": {"latitude": 120, "longitude": 0}}),
    ])

    result = report.results[0]
    assert result.status == "rejected"
    assert result.error["errors"][0]["field"].startswith("location")
    db_session.refresh(visit)
    assert visit.status == VisitStatus.PLANNED.value


def test_invalid_base64_photo_is_rejected(db_session, ctx, customer):
    visit = _planned(db_session, ctx, customer)
    report = _reconcile(db_session, ctx, visit.id, [
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-photo", "photo", 1, {"contentBase64": "***not-base64***"}),
    ])
    assert [r.status for r in report.results] == ["applied", "rejected"]


def test_photo_analysis_outage_does_not_reject_event(db_session, ctx, customer):
    visit = _planned(db_session, ctx, customer)
    image_client = FakeImageAnalysisClient(fail=True)

    report = _reconcile(db_session, ctx, visit.id, [
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-photo", "photo", 1, _photo_payload(b"shelf")),
    ], image_client=image_client)

    assert [r.status for r in report.results] == ["applied", "applied"]
    assert image_client.calls == 1


def test_unknown_visit_is_not_found(db_session, ctx):
    with pytest.raises(NotFoundError):
        _reconcile(db_session, ctx, 4242, [])


def test_ties_keep_batch_order(db_session, ctx, customer):
    visit = _planned(db_session, ctx, customer)
    report = _reconcile(db_session, ctx, visit.id, [
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-note-a", "note", 1, {"text": "alpha"}),
        _event("k-note-b", "note", 1, {"text": "beta"}),
    ])
    assert [r.idempotency_key for r in report.results] == ["k-start", "k-note-a", "k-note-b"]
    db_session.refresh(visit)
    assert visit.notes.index("alpha") < visit.notes.index("beta")
    assert db_session.query(Visit).count() == 1


def _oversized_sale():
    return {"items": [{"productId": 1, "quantity": 6, "unitPrice": "10"}], "paymentMethod": "CASH", "totalAmount": "60"}


def test_replaying_applied_events_keeps_pending_failures(db_session, ctx, customer):
    make_stock(db_session, product_id=1, quantity=5)
    visit = _planned(db_session, ctx, customer)
    _reconcile(db_session, ctx, visit.id, [
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-sale", "sale", 5, _oversized_sale()),
    ])
    db_session.refresh(visit)
    synced_at = visit.last_synced_at

    report = _reconcile(db_session, ctx, visit.id, [_event("k-start", "start", 0, {"location": LOCATION})])

    assert [r.status for r in report.results] == ["duplicate"]
    assert report.as_dict()["sync_status"] == "ERROR"
    db_session.refresh(visit)
    assert visit.sync_status == "ERROR"
    assert [f["idempotency_key"] for f in visit.sync_errors] == ["k-sale"]
    assert visit.last_synced_at == synced_at


def test_failures_from_earlier_batches_are_kept(db_session, ctx, customer):
    make_stock(db_session, product_id=1, quantity=5)
    visit = _planned(db_session, ctx, customer)
    _reconcile(db_session, ctx, visit.id, [
        _event("k-start", "start", 0, {"location": LOCATION}),
        _event("k-sale", "sale", 5, _oversized_sale()),
    ])

    report = _reconcile(db_session, ctx, visit.id, [_event("k-note", "note", 10, {"text": "Back tomorrow"})])

    assert [r.status for r in report.results] == ["applied"]
    assert report.sync_status.value == "ERROR"
    db_session.refresh(visit)
    assert visit.sync_status == "ERROR"
    assert [f["idempotency_key"] for f in visit.sync_errors] == ["k-sale"]
