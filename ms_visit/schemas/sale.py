"""
Schemas de Venta (Sale) y Factura
"""
from pydantic import Field
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from ..constants import PaymentMethod
from .common import CamelModel


class SaleItemCreate(CamelModel):
    product_id: int = Field(..., gt=0, description="ID del producto")
    quantity: int = Field(..., gt=0, description="Unidades vendidas")
    unit_price: Decimal = Field(..., ge=0, description="Precio unitario")
    discount: Decimal = Field(Decimal("0"), ge=0, description="Descuento total de la línea")


class SaleCreate(CamelModel):
    """Schema para registrar una venta dentro de una visita"""
    items: List[SaleItemCreate] = Field(..., min_length=1, description="Líneas de la venta")
    payment_method: PaymentMethod = Field(..., description="Método de pago")
    total_amount: Decimal = Field(..., ge=0, description="Total declarado por el dispositivo")

    class Config:
        json_schema_extra = {
            "example": {
                "items": [
                    {"productId": 101, "quantity": 3, "unitPrice": "12.50", "discount": "2.50"},
                    {"productId": 205, "quantity": 1, "unitPrice": "40.00"}
                ],
                "paymentMethod": "CASH",
                "totalAmount": "75.00"
            }
        }


class SaleItemResponse(CamelModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    unit_price: float
    discount: float
    line_total: float


class SaleResponse(CamelModel):
    id: int
    visit_id: Optional[int] = None
    customer_id: int
    agent_id: int
    invoice_number: Optional[str] = None
    total_amount: float
    payment_method: str
    payment_status: str
    sold_at: datetime
    items: List[SaleItemResponse] = Field(default_factory=list)


class InvoiceLine(CamelModel):
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    unit_price: float
    discount: float
    line_total: float


class InvoiceResponse(CamelModel):
    """Proyección de solo lectura de la venta"""
    invoice_number: str
    sale_id: int
    visit_id: Optional[int] = None
    customer_id: int
    customer_name: str
    issued_at: datetime
    lines: List[InvoiceLine]
    subtotal: float
    discount_total: float
    total: float
    payment_method: str
    payment_status: str


class SaleCreateResponse(CamelModel):
    sale: SaleResponse
    invoice: InvoiceResponse
