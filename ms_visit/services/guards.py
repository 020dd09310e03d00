"""
Guardas de stock y crédito

Predicados de solo lectura que devuelven resultados estructurados en lugar
de lanzar excepciones, para que el llamador muestre todos los problemas en
una sola respuesta. La mutación real ocurre en services/sales.py.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..constants import PaymentMethod
from ..models import AgentStock


@dataclass(frozen=True)
class StockRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class Shortage:
    product_id: int
    product_name: Optional[str]
    requested: int
    available: int

    @property
    def short_by(self) -> int:
        return self.requested - self.available

    def as_dict(self) -> Dict[str, object]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "requested": self.requested,
            "available": self.available,
            "short_by": self.short_by,
        }


@dataclass
class StockCheckResult:
    ok: bool
    shortages: List[Shortage] = field(default_factory=list)


@dataclass
class CreditCheckResult:
    approved: bool
    reason: Optional[str] = None
    credit_limit: Optional[Decimal] = None
    current_balance: Optional[Decimal] = None
    requested: Optional[Decimal] = None

    @property
    def available_credit(self) -> Optional[Decimal]:
        if self.credit_limit is None or self.current_balance is None:
            return None
        return self.credit_limit - self.current_balance

    def as_dict(self) -> Dict[str, object]:
        return {
            "approved": self.approved,
            "reason": self.reason,
            "credit_limit": self.credit_limit,
            "current_balance": self.current_balance,
            "requested": self.requested,
            "available_credit": self.available_credit,
        }


def aggregate_requests(lines: Iterable[StockRequest]) -> "OrderedDict[int, int]":
    """Suma cantidades de líneas repetidas del mismo producto"""
    totals: "OrderedDict[int, int]" = OrderedDict()
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def check_stock(db: Session, company_id: int, agent_id: int, lines: Iterable[StockRequest]) -> StockCheckResult:
    """
    Compara cada línea pedida contra el stock que carga el agente

    No falla al primer faltante: devuelve la lista completa.
    """
    requested = aggregate_requests(lines)
    if not requested:
        return StockCheckResult(ok=True)

    rows = db.query(AgentStock).filter(
        AgentStock.company_id == company_id,
        AgentStock.agent_id == agent_id,
        AgentStock.product_id.in_(list(requested.keys()))
    ).all()
    by_product = {row.product_id: row for row in rows}

    shortages = []
    for product_id, quantity in requested.items():
        row = by_product.get(product_id)
        available = row.quantity if row else 0
        if quantity > available:
            shortages.append(Shortage(
                product_id=product_id,
                product_name=row.product_name if row else None,
                requested=quantity,
                available=available,
            ))

    return StockCheckResult(ok=not shortages, shortages=shortages)


def check_credit(customer, amount: Decimal, payment_method: PaymentMethod) -> CreditCheckResult:
    """
    Verifica el límite de crédito del cliente

    Solo aplica a ventas a crédito; otros métodos se aprueban sin condición.
    """
    if PaymentMethod(payment_method) != PaymentMethod.CREDIT:
        return CreditCheckResult(approved=True)

    credit_limit = Decimal(customer.credit_limit or 0)
    balance = Decimal(customer.credit_balance or 0)
    amount = Decimal(amount)

    if balance + amount > credit_limit:
        return CreditCheckResult(
            approved=False,
            reason="Límite de crédito excedido",
            credit_limit=credit_limit,
            current_balance=balance,
            requested=amount,
        )

    return CreditCheckResult(
        approved=True,
        credit_limit=credit_limit,
        current_balance=balance,
        requested=amount,
    )
