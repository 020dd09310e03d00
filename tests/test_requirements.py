"""
Tests del resolvedor de actividades requeridas
"""
from types import SimpleNamespace

from ms_visit.constants import ActivityType, CustomerType
from ms_visit.models import Customer
from ms_visit.services.requirements import (
    Requirement, count_activities, evaluate_completion, requirements_snapshot, resolve_requirements
)


def _customer(key_account: bool):
    return SimpleNamespace(is_key_account=key_account)


def _activity(activity_type: ActivityType, completed: bool = True):
    return SimpleNamespace(activity_type=activity_type.value, completed=completed)


def test_standard_customer_baseline():
    requirements = {r.activity_type: r.minimum for r in resolve_requirements(_customer(False))}
    assert requirements == {
        ActivityType.ARRIVAL: 1,
        ActivityType.PHOTO: 2,
        ActivityType.DEPARTURE: 1,
    }


def test_key_account_adds_survey_and_audit():
    requirements = {r.activity_type: r.minimum for r in resolve_requirements(_customer(True))}
    assert requirements[ActivityType.SURVEY] == 1
    assert requirements[ActivityType.AUDIT] == 1
    assert requirements[ActivityType.PHOTO] == 2


def test_resolution_is_deterministic():
    assert resolve_requirements(_customer(True)) == resolve_requirements(_customer(True))


def test_missing_photos_message():
    counts = count_activities([_activity(ActivityType.ARRIVAL), _activity(ActivityType.PHOTO)])
    missing = evaluate_completion(resolve_requirements(_customer(False)), counts)
    assert [m.message for m in missing] == ["At least 2 photos required"]
    assert missing[0].recorded == 1
    assert missing[0].required == 2


def test_order_of_activities_does_not_matter():
    activities = [
        _activity(ActivityType.PHOTO),
        _activity(ActivityType.AUDIT),
        _activity(ActivityType.SURVEY),
        _activity(ActivityType.ARRIVAL),
        _activity(ActivityType.PHOTO),
    ]
    requirements = resolve_requirements(_customer(True))
    assert evaluate_completion(requirements, count_activities(activities)) == []
    assert evaluate_completion(requirements, count_activities(list(reversed(activities)))) == []


def test_departure_is_only_checked_when_requested():
    counts = count_activities([_activity(ActivityType.ARRIVAL), _activity(ActivityType.PHOTO), _activity(ActivityType.PHOTO)])
    requirements = resolve_requirements(_customer(False))
    assert evaluate_completion(requirements, counts) == []
    missing = evaluate_completion(requirements, counts, include_departure=True)
    assert [m.activity_type for m in missing] == [ActivityType.DEPARTURE]


def test_incomplete_activities_are_not_counted():
    counts = count_activities([_activity(ActivityType.PHOTO, completed=False)])
    assert counts[ActivityType.PHOTO] == 0


def test_describe_uses_singular_for_one():
    assert Requirement(ActivityType.SURVEY, 1).describe() == "At least 1 survey required"


def test_snapshot_is_json_friendly():
    snapshot = requirements_snapshot(resolve_requirements(_customer(False)))
    assert snapshot[0] == {"activity_type": "arrival", "minimum": 1, "required": True}


def test_customer_type_drives_key_account_flag():
    assert Customer(customer_type=CustomerType.KEY_ACCOUNT.value).is_key_account is True
    assert Customer(customer_type=CustomerType.STANDARD.value).is_key_account is False

    key_account = Customer(customer_type=CustomerType.KEY_ACCOUNT.value)
    assert ActivityType.AUDIT in {r.activity_type for r in resolve_requirements(key_account)}
