"""
Clientes HTTP para servicios externos
"""
from .image_analysis_client import ImageAnalysisClient, image_analysis_client, get_image_analysis_client
from .fraud_client import FraudRiskClient, fraud_client, get_fraud_client
from .notification_client import NotificationClient, notification_client, get_notification_client

__all__ = [
    "ImageAnalysisClient",
    "image_analysis_client",
    "get_image_analysis_client",
    "FraudRiskClient",
    "fraud_client",
    "get_fraud_client",
    "NotificationClient",
    "notification_client",
    "get_notification_client",
]
