"""
Compositor de transacciones de venta

Venta + líneas + descuento de stock + actividad 'sale' + factura, como una
sola unidad lógica: o se confirma todo o no queda nada escrito.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import ActivityType, PaymentMethod, PaymentStatus
from ..exceptions import StorageError, ValidationError, VisitServiceError
from ..models import AgentStock, Customer, Sale, SaleItem
from .guards import StockRequest, aggregate_requests, check_credit, check_stock
from .visit_workflow import AgentContext, append_activity, get_active_visit, get_customer, utcnow

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class SaleLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    discount: Decimal = Decimal("0")


@dataclass
class SaleResult:
    sale: Sale
    invoice: Dict[str, Any]


class _LedgerRace(Exception):
    """La actualización condicional no encontró fila (otra venta ganó)"""

    def __init__(self, kind: str):
        super().__init__(kind)
        self.kind = kind


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _price_lines(lines: Sequence[SaleLine]) -> List[Dict[str, Any]]:
    """Calcula totales por línea y valida descuentos"""
    priced = []
    errors = []
    for index, line in enumerate(lines):
        if line.quantity <= 0:
            errors.append({"line": index, "product_id": line.product_id, "message": "La cantidad debe ser positiva"})
            continue
        unit_price = _money(line.unit_price)
        discount = _money(line.discount or 0)
        subtotal = _money(unit_price * line.quantity)
        if unit_price < 0 or discount < 0:
            errors.append({"line": index, "product_id": line.product_id, "message": "El precio y el descuento no pueden ser negativos"})
            continue
        if discount > subtotal:
            errors.append({"line": index, "product_id": line.product_id, "message": "El descuento supera el subtotal de la línea"})
            continue
        priced.append({
            "product_id": line.product_id,
            "quantity": line.quantity,
            "unit_price": unit_price,
            "discount": discount,
            "subtotal": subtotal,
            "line_total": subtotal - discount,
        })
    if errors:
        raise ValidationError("Líneas de venta inválidas", {"errors": errors})
    return priced


def build_invoice(sale: Sale, customer: Customer) -> Dict[str, Any]:
    """Proyección de solo lectura de la venta; no es fuente de verdad"""
    lines = [
        {
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "unit_price": _money(item.unit_price),
            "discount": _money(item.discount),
            "line_total": _money(item.line_total),
        }
        for item in sale.items
    ]
    discount_total = sum((line["discount"] for line in lines), Decimal("0"))
    total = _money(sale.total_amount)
    return {
        "invoice_number": sale.invoice_number,
        "sale_id": sale.id,
        "visit_id": sale.visit_id,
        "customer_id": customer.id,
        "customer_name": customer.name,
        "issued_at": sale.sold_at,
        "lines": lines,
        "subtotal": total + discount_total,
        "discount_total": discount_total,
        "total": total,
        "payment_method": sale.payment_method,
        "payment_status": sale.payment_status,
    }


def compose_sale(
    db: Session,
    ctx: AgentContext,
    visit_id: int,
    lines: Sequence[SaleLine],
    payment_method: PaymentMethod,
    total_amount,
    sold_at: Optional[datetime] = None,
) -> SaleResult:
    """
    Crea la venta de forma atómica

    Orden estricto:
    1. Validar totales, stock y crédito (sin escrituras si falla)
    2. Persistir Sale + SaleItems
    3. Descontar AgentStock con UPDATE condicional
    4. Agregar la actividad 'sale' a la visita
    5. Generar la factura

    Raises:
        ValidationError: Faltantes de stock, crédito rechazado o total inválido
        StorageError: Fallo de almacenamiento (todo revertido)
    """
    payment_method = PaymentMethod(payment_method)
    visit = get_active_visit(db, ctx, visit_id)
    customer = get_customer(db, ctx.company_id, visit.customer_id)

    if not lines:
        raise ValidationError("La venta debe incluir al menos un producto")

    priced = _price_lines(lines)
    computed_total = sum((line["line_total"] for line in priced), Decimal("0"))
    declared_total = _money(total_amount)
    if computed_total != declared_total:
        raise ValidationError(
            "El total declarado no coincide con las líneas",
            {"declared_total": declared_total, "computed_total": computed_total}
        )

    requests = [StockRequest(line["product_id"], line["quantity"]) for line in priced]
    stock = check_stock(db, ctx.company_id, ctx.agent_id, requests)
    if not stock.ok:
        raise ValidationError(
            "Stock insuficiente",
            {"shortages": [shortage.as_dict() for shortage in stock.shortages]}
        )

    credit = check_credit(customer, computed_total, payment_method)
    if not credit.approved:
        raise ValidationError("Límite de crédito excedido", {"credit": credit.as_dict()})

    sold_at = sold_at or utcnow()
    names = {
        row.product_id: row.product_name
        for row in db.query(AgentStock).filter(
            AgentStock.company_id == ctx.company_id,
            AgentStock.agent_id == ctx.agent_id,
            AgentStock.product_id.in_([line["product_id"] for line in priced])
        ).all()
    }

    try:
        sale = Sale(
            company_id=ctx.company_id,
            agent_id=ctx.agent_id,
            customer_id=customer.id,
            visit_id=visit.id,
            total_amount=computed_total,
            payment_method=payment_method.value,
            payment_status=(
                PaymentStatus.PENDING.value if payment_method == PaymentMethod.CREDIT else PaymentStatus.PAID.value
            ),
            sold_at=sold_at,
        )
        sale.items = [
            SaleItem(
                product_id=line["product_id"],
                product_name=names.get(line["product_id"]),
                quantity=line["quantity"],
                unit_price=line["unit_price"],
                discount=line["discount"],
                line_total=line["line_total"],
            )
            for line in priced
        ]
        db.add(sale)
        db.flush()
        sale.invoice_number = f"INV-{ctx.company_id}-{sale.id:08d}"

        for product_id, quantity in aggregate_requests(requests).items():
            result = db.execute(
                update(AgentStock)
                .where(
                    AgentStock.company_id == ctx.company_id,
                    AgentStock.agent_id == ctx.agent_id,
                    AgentStock.product_id == product_id,
                    AgentStock.quantity >= quantity
                )
                .values(quantity=AgentStock.quantity - quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise _LedgerRace("stock")

        if payment_method == PaymentMethod.CREDIT:
            result = db.execute(
                update(Customer)
                .where(
                    Customer.id == customer.id,
                    Customer.company_id == ctx.company_id,
                    Customer.credit_balance + computed_total <= Customer.credit_limit
                )
                .values(credit_balance=Customer.credit_balance + computed_total)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise _LedgerRace("credit")

        append_activity(
            visit,
            ActivityType.SALE,
            recorded_at=sold_at,
            reference_id=sale.id,
            data={
                "invoice_number": sale.invoice_number,
                "total_amount": str(computed_total),
                "payment_method": payment_method.value,
                "items": len(priced),
            }
        )
        db.commit()
    except _LedgerRace as race:
        db.rollback()
        logger.warning(f"Venta concurrente detectada ({race.kind}) para agente {ctx.agent_id}, visita {visit_id}")
        if race.kind == "stock":
            fresh = check_stock(db, ctx.company_id, ctx.agent_id, requests)
            raise ValidationError(
                "Stock insuficiente",
                {"shortages": [shortage.as_dict() for shortage in fresh.shortages]}
            )
        db.refresh(customer)
        raise ValidationError("Límite de crédito excedido", {"credit": check_credit(customer, computed_total, payment_method).as_dict()})
    except VisitServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error de almacenamiento al registrar venta en visita {visit_id}: {str(e)}")
        raise StorageError("No se pudo registrar la venta; no se aplicó ningún cambio") from e

    db.refresh(sale)
    db.refresh(customer)
    logger.info(f"Venta {sale.invoice_number} registrada por {computed_total} ({payment_method.value})")
    return SaleResult(sale=sale, invoice=build_invoice(sale, customer))
