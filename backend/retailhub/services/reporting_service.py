# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Product, ProductReturn, ReturnItem, Store
from ..time_utils import as_utc_naive, parse_iso_datetime, to_utc_z, utcnow


class ReportError(Exception):
    """Raised when report generation fails."""
    status_code = 400


REPORT_TYPES = ("summary", "detailed", "analytics")
TOP_N = 10
TREND_DAYS = 30


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("startDate and endDate must be ISO-8601 dates")
    return start_dt, end_dt


def _filtered(query, store_id: int | None, start_dt: datetime | None, end_dt: datetime | None):
    if store_id:
        query = query.filter(ProductReturn.store_id == store_id)
    if start_dt:
        query = query.filter(ProductReturn.return_date >= start_dt)
    if end_dt:
        query = query.filter(ProductReturn.return_date <= end_dt)
    return query


def _group(returns, key) -> list[dict]:
    """Count and refund sum per key, in first-seen order."""
    buckets: dict = {}
    for r in returns:
        k = key(r)
        bucket = buckets.setdefault(k, {"count": 0, "refund_amount_cents": 0})
        bucket["count"] += 1
        bucket["refund_amount_cents"] += r.refund_amount_cents
    return [{"key": k, **v} for k, v in buckets.items()]


def _summary(store_id, start_dt, end_dt) -> dict:
    returns = _filtered(db.session.query(ProductReturn), store_id, start_dt, end_dt).order_by(
        ProductReturn.return_date.desc(), ProductReturn.id.desc()
    ).all()

    total_returns = len(returns)
    total_refund = sum(r.refund_amount_cents for r in returns)

    refunds_by_type = [
        {"refund_type": row["key"], "count": row["count"], "refund_amount_cents": row["refund_amount_cents"]}
        for row in _group(returns, lambda r: r.refund_type)
    ]
    returns_by_status = [
        {"status": row["key"], "count": row["count"], "refund_amount_cents": row["refund_amount_cents"]}
        for row in _group(returns, lambda r: r.status)
    ]
    returns_by_day = [
        {"date": row["key"], "count": row["count"], "refund_amount_cents": row["refund_amount_cents"]}
        for row in sorted(_group(returns, lambda r: as_utc_naive(r.return_date).strftime("%Y-%m-%d")), key=lambda x: x["key"])
    ]

    item_query = _filtered(
        db.session.query(ReturnItem).join(ProductReturn, ProductReturn.id == ReturnItem.return_id),
        store_id,
        start_dt,
        end_dt,
    )

    by_reason: dict = defaultdict(lambda: {"count": 0, "quantity": 0})
    for item in item_query.all():
        bucket = by_reason[item.return_reason]
        bucket["count"] += 1
        bucket["quantity"] += item.quantity
    returns_by_reason = [{"return_reason": reason, **totals} for reason, totals in by_reason.items()]

    top_rows = _filtered(
        db.session.query(
            ReturnItem.product_id,
            func.sum(ReturnItem.quantity).label("quantity"),
            func.count(ReturnItem.id).label("count"),
        ).join(ProductReturn, ProductReturn.id == ReturnItem.return_id),
        store_id,
        start_dt,
        end_dt,
    ).group_by(ReturnItem.product_id).order_by(func.sum(ReturnItem.quantity).desc()).limit(TOP_N).all()

    top_products = []
    for product_id, quantity, count in top_rows:
        product = db.session.get(Product, product_id)
        top_products.append({
            "product_id": product_id,
            "name": product.name if product else None,
            "sku": product.sku if product else None,
            "quantity": int(quantity or 0),
            "count": count,
        })

    return {
        "summary": {
            "total_returns": total_returns,
            "total_refund_amount_cents": total_refund,
            "average_refund_amount_cents": round(total_refund / total_returns) if total_returns else 0,
        },
        "refunds_by_type": refunds_by_type,
        "returns_by_reason": returns_by_reason,
        "returns_by_status": returns_by_status,
        "returns_by_day": returns_by_day,
        "top_returned_products": top_products,
        "returns": [r.to_dict() for r in returns],
    }


def _detailed(store_id, start_dt, end_dt) -> dict:
    returns = _filtered(db.session.query(ProductReturn), store_id, start_dt, end_dt).order_by(
        ProductReturn.return_date.desc(), ProductReturn.id.desc()
    ).all()
    return {
        "returns": [r.to_dict(include_items=True) for r in returns],
        "total_returns": len(returns),
        "total_refund_amount_cents": sum(r.refund_amount_cents for r in returns),
    }


def _analytics(store_id, start_dt, end_dt) -> dict:
    returns = _filtered(db.session.query(ProductReturn), store_id, start_dt, end_dt).order_by(
        ProductReturn.return_date.asc(), ProductReturn.id.asc()
    ).all()

    returns_by_month = [
        {"month": row["key"], "count": row["count"], "refund_amount_cents": row["refund_amount_cents"]}
        for row in _group(returns, lambda r: as_utc_naive(r.return_date).strftime("%Y-%m"))
    ]
    refunds_by_method = [
        {"refund_type": row["key"], "count": row["count"], "refund_amount_cents": row["refund_amount_cents"]}
        for row in _group(returns, lambda r: r.refund_type)
    ]

    trend_start = utcnow() - timedelta(days=TREND_DAYS)
    return_trends = [
        {
            "return_date": to_utc_z(r.return_date),
            "refund_amount_cents": r.refund_amount_cents,
            "status": r.status,
        }
        for r in returns
        if as_utc_naive(r.return_date) >= trend_start
    ]

    by_customer: dict = {}
    for r in returns:
        if r.customer_id is None:
            continue
        bucket = by_customer.setdefault(r.customer_id, {"count": 0, "refund_amount_cents": 0})
        bucket["count"] += 1
        bucket["refund_amount_cents"] += r.refund_amount_cents

    ranked = sorted(by_customer.items(), key=lambda kv: (-kv[1]["count"], -kv[1]["refund_amount_cents"], kv[0]))
    top_customers = []
    for customer_id, totals in ranked[:TOP_N]:
        customer = db.session.get(Customer, customer_id)
        top_customers.append({
            "customer_id": customer_id,
            "name": customer.name if customer else None,
            "email": customer.email if customer else None,
            **totals,
        })

    return {
        "returns_by_month": returns_by_month,
        "refunds_by_method": refunds_by_method,
        "return_trends": return_trends,
        "top_returning_customers": top_customers,
    }


def return_reports(
    *,
    report_type: str = "summary",
    store_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
) -> dict:
    """
    Aggregated views over returns.

    summary: totals, by refund type / status / reason / day, top products
    detailed: every return with its items
    analytics: by month and refund type, last-30-day trend, top customers
    """
    if report_type not in REPORT_TYPES:
        raise ReportError("Invalid report type")

    start_dt, end_dt = _parse_range(start, end)
    if store_id and not db.session.get(Store, store_id):
        raise ReportError("Store not found")

    if report_type == "summary":
        data = _summary(store_id, start_dt, end_dt)
    elif report_type == "detailed":
        data = _detailed(store_id, start_dt, end_dt)
    else:
        data = _analytics(store_id, start_dt, end_dt)

    return {"type": report_type, "data": data}
