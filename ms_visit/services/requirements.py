"""
Resolución de actividades requeridas por visita

Función determinista de los atributos del cliente, sin estado. Se evalúa al
iniciar la visita (para el checklist del cliente) y otra vez al cerrarla.
"""
from dataclasses import dataclass
from typing import Dict, List, Mapping

from ..config import settings
from ..constants import ActivityType

_LABELS = {
    ActivityType.ARRIVAL: ("arrival", "arrivals"),
    ActivityType.PHOTO: ("photo", "photos"),
    ActivityType.SURVEY: ("survey", "surveys"),
    ActivityType.AUDIT: ("audit", "audits"),
    ActivityType.SALE: ("sale", "sales"),
    ActivityType.DEPARTURE: ("departure", "departures"),
}


@dataclass(frozen=True)
class Requirement:
    activity_type: ActivityType
    minimum: int

    def describe(self) -> str:
        singular, plural = _LABELS[self.activity_type]
        noun = singular if self.minimum == 1 else plural
        return f"At least {self.minimum} {noun} required"


@dataclass(frozen=True)
class MissingRequirement:
    activity_type: ActivityType
    required: int
    recorded: int
    message: str

    def as_dict(self) -> Dict[str, object]:
        return {
            "activity_type": self.activity_type.value,
            "required": self.required,
            "recorded": self.recorded,
            "message": self.message,
        }


def resolve_requirements(customer) -> List[Requirement]:
    """
    Calcula el conjunto de actividades obligatorias para un cliente

    Base: arrival x1, photo x2, departure x1.
    Key accounts: además survey x1 y audit x1.
    """
    requirements = [
        Requirement(ActivityType.ARRIVAL, 1),
        Requirement(ActivityType.PHOTO, settings.MIN_PHOTOS),
    ]
    if customer.is_key_account:
        requirements.append(Requirement(ActivityType.SURVEY, settings.KEY_ACCOUNT_SURVEYS))
        requirements.append(Requirement(ActivityType.AUDIT, settings.KEY_ACCOUNT_AUDITS))
    requirements.append(Requirement(ActivityType.DEPARTURE, 1))
    return requirements


def count_activities(activities) -> Dict[ActivityType, int]:
    """Cuenta actividades completadas por tipo, sin importar el orden"""
    counts: Dict[ActivityType, int] = {activity_type: 0 for activity_type in ActivityType}
    for activity in activities:
        if activity.completed:
            counts[ActivityType(activity.activity_type)] += 1
    return counts


def evaluate_completion(
    requirements: List[Requirement],
    counts: Mapping[ActivityType, int],
    include_departure: bool = False,
) -> List[MissingRequirement]:
    """
    Compara requisitos contra la bitácora

    La salida la agrega complete() en el mismo paso, por eso por defecto no
    se evalúa.
    """
    missing = []
    for requirement in requirements:
        if requirement.activity_type == ActivityType.DEPARTURE and not include_departure:
            continue
        recorded = counts.get(requirement.activity_type, 0)
        if recorded < requirement.minimum:
            missing.append(MissingRequirement(
                activity_type=requirement.activity_type,
                required=requirement.minimum,
                recorded=recorded,
                message=requirement.describe(),
            ))
    return missing


def requirements_snapshot(requirements: List[Requirement]) -> List[Dict[str, object]]:
    return [
        {"activity_type": r.activity_type.value, "minimum": r.minimum, "required": True}
        for r in requirements
    ]
