"""
Enumeraciones del dominio de visitas
"""
from enum import Enum


class VisitStatus(str, Enum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = (VisitStatus.COMPLETED, VisitStatus.FAILED, VisitStatus.CANCELLED)


class SyncStatus(str, Enum):
    LOCAL = "LOCAL"
    SYNCED = "SYNCED"
    ERROR = "ERROR"


class SyncEventType(str, Enum):
    """Eventos que el dispositivo puede encolar sin conexión"""
    START = "start"
    PHOTO = "photo"
    SURVEY = "survey"
    AUDIT = "audit"
    SALE = "sale"
    NOTE = "note"
    COMPLETE = "complete"
    CANCEL = "cancel"


class ActivityType(str, Enum):
    ARRIVAL = "arrival"
    PHOTO = "photo"
    SURVEY = "survey"
    SALE = "sale"
    AUDIT = "audit"
    DEPARTURE = "departure"


# Solo pueden registrarse una vez por visita
SINGULAR_ACTIVITIES = (ActivityType.ARRIVAL, ActivityType.DEPARTURE)


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    MOBILE_MONEY = "MOBILE_MONEY"
    BANK_TRANSFER = "BANK_TRANSFER"
    CREDIT = "CREDIT"


class PaymentStatus(str, Enum):
    PAID = "PAID"
    PENDING = "PENDING"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"


ALERT_RISK_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)


class CustomerType(str, Enum):
    STANDARD = "STANDARD"
    KEY_ACCOUNT = "KEY_ACCOUNT"


__all__ = [
    "VisitStatus",
    "TERMINAL_STATUSES",
    "SyncStatus",
    "SyncEventType",
    "ActivityType",
    "SINGULAR_ACTIVITIES",
    "PaymentMethod",
    "PaymentStatus",
    "RiskLevel",
    "ALERT_RISK_LEVELS",
    "CustomerType",
]
