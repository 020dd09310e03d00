"""
Dependencias de FastAPI compartidas por los routers
"""
from fastapi import Depends

from ..clients import FraudRiskClient, NotificationClient, get_fraud_client, get_notification_client
from ..services.fraud import FraudSignalEmitter


def get_fraud_emitter(
    fraud_client: FraudRiskClient = Depends(get_fraud_client),
    notification_client: NotificationClient = Depends(get_notification_client)
) -> FraudSignalEmitter:
    return FraudSignalEmitter(fraud_client, notification_client)
