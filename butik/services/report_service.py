"""
Sales reporting.

Read-only projection over orders. Aggregation happens in Python over the
orders in range so the same code runs on PostgreSQL and SQLite.

Revenue only counts completed (selesai) orders and excludes shipping.
"""
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from butik.core.exceptions import InvalidInputError
from butik.core.utils import quantize_money, utcnow
from butik.models import Order, OrderItem, OrderStatus
from butik.utils.input_sanitizer import sanitize_string

logger = logging.getLogger(__name__)

DAILY_PERIODS = 30
WEEKLY_PERIODS = 12
MONTHLY_PERIODS = 12
TOP_LIMIT = 10


def _parse_date(value: Any, field_name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidInputError(f"{field_name} must be a date in YYYY-MM-DD format", field=field_name)


def default_range(today: Optional[date] = None) -> Tuple[date, date]:
    """First day of the month twelve months back, through today."""
    today = today or utcnow().date()
    month_index = today.year * 12 + (today.month - 1) - 12
    start = date(month_index // 12, month_index % 12 + 1, 1)
    return start, today


def _ratio(part, whole) -> float:
    if not whole:
        return 0.0
    return round(float(part) * 100 / float(whole), 2)


class _Bucket:
    """Running totals for one period."""

    def __init__(self, period: str):
        self.period = period
        self.total_orders = 0
        self.completed_orders = 0
        self.cancelled_orders = 0
        self.revenue = Decimal("0")
        self.products = 0
        self.customers = set()

    def add(self, order: Order, revenue: Decimal, units: int) -> None:
        self.total_orders += 1
        if order.status == OrderStatus.SELESAI.value:
            self.completed_orders += 1
            self.customers.add(order.user_id)
            self.revenue += revenue
            self.products += units
        elif order.status == OrderStatus.DIBATALKAN.value:
            self.cancelled_orders += 1

    def to_dict(self, with_period: bool = True) -> Dict[str, Any]:
        avg = self.revenue / self.completed_orders if self.completed_orders else Decimal("0")
        data = {
            "total_orders": self.total_orders,
            "completed_orders": self.completed_orders,
            "cancelled_orders": self.cancelled_orders,
            "total_revenue": float(quantize_money(self.revenue)),
            "avg_order_value": float(quantize_money(avg)),
            "unique_customers": len(self.customers),
            "total_products": self.products,
            "conversion_rate": _ratio(self.completed_orders, self.total_orders),
        }
        if with_period:
            data = {"period": self.period, **data}
        return data


def _matching_items(order: Order, query: Optional[str]) -> List[OrderItem]:
    if not query:
        return list(order.items)
    needle = query.lower()
    return [item for item in order.items if needle in (item.product_name or "").lower()]


def _order_revenue(order: Order, items: Iterable[OrderItem], filtered: bool) -> Decimal:
    if filtered:
        return sum((item.subtotal for item in items), Decimal("0"))
    return Decimal(order.total_price) - Decimal(order.shipping_cost or 0)


def _newest(buckets: Dict[str, _Bucket], limit: int) -> List[Dict[str, Any]]:
    keys = sorted(buckets, reverse=True)[:limit]
    return [buckets[key].to_dict() for key in keys]


async def sales_report(
    db: AsyncSession,
    viewer_id: int,
    viewer_is_admin: bool,
    start_date: Any = None,
    end_date: Any = None,
    query: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the sales report for [start_date, end_date].

    Non-admin viewers only see their own orders. `query` narrows to orders
    with a line whose product name contains it, and revenue then counts
    only the matching lines.
    """
    default_start, default_end = default_range()
    start = _parse_date(start_date, "start_date") or default_start
    end = _parse_date(end_date, "end_date") or default_end
    if start > end:
        raise InvalidInputError("start_date must not be after end_date", field="start_date")
    query = sanitize_string(query, 100)

    range_start = datetime.combine(start, time.min, tzinfo=timezone.utc)
    range_end = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)

    statement = (
        select(Order)
        .where(Order.created_at >= range_start, Order.created_at < range_end)
        .options(selectinload(Order.items), selectinload(Order.user))
        .order_by(Order.created_at)
    )
    if not viewer_is_admin:
        statement = statement.where(Order.user_id == viewer_id)
    if query:
        statement = statement.where(
            Order.items.any(OrderItem.product_name.ilike(f"%{query}%"))
        )

    result = await db.execute(statement)
    orders = result.scalars().all()

    overall = _Bucket("overall")
    daily: Dict[str, _Bucket] = {}
    weekly: Dict[str, _Bucket] = {}
    monthly: Dict[str, _Bucket] = {}
    products: Dict[Any, Dict[str, Any]] = {}
    customers: Dict[int, Dict[str, Any]] = {}

    for order in orders:
        items = _matching_items(order, query)
        revenue = _order_revenue(order, items, filtered=bool(query))
        units = sum(item.quantity for item in items)
        day = order.created_at.date()
        iso_year, iso_week, _ = day.isocalendar()

        overall.add(order, revenue, units)
        for buckets, key in (
            (daily, day.isoformat()),
            (weekly, f"{iso_year}-W{iso_week:02d}"),
            (monthly, day.strftime("%Y-%m")),
        ):
            if key not in buckets:
                buckets[key] = _Bucket(key)
            buckets[key].add(order, revenue, units)

        if order.status != OrderStatus.SELESAI.value:
            continue

        for item in items:
            key = item.product_id if item.product_id is not None else item.product_name
            entry = products.setdefault(key, {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "total_sold": 0,
                "total_revenue": Decimal("0"),
                "orders": set(),
            })
            entry["total_sold"] += item.quantity
            entry["total_revenue"] += item.subtotal
            entry["orders"].add(order.id)

        customer = customers.setdefault(order.user_id, {
            "user_id": order.user_id,
            "name": order.user.name if order.user else None,
            "email": order.user.email if order.user else None,
            "total_orders": 0,
            "total_spent": Decimal("0"),
        })
        customer["total_orders"] += 1
        customer["total_spent"] += revenue

    top_products = sorted(products.values(), key=lambda p: (-p["total_sold"], -p["total_revenue"]))
    top_customers = sorted(customers.values(), key=lambda c: (-c["total_spent"], -c["total_orders"]))

    logger.info(
        "Sales report %s..%s for %s: %d orders",
        start, end, "admin" if viewer_is_admin else f"user {viewer_id}", len(orders),
    )

    summary = overall.to_dict(with_period=False)
    return {
        "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "query": query,
        "overall_summary": summary,
        "daily_sales": _newest(daily, DAILY_PERIODS),
        "weekly_sales": _newest(weekly, WEEKLY_PERIODS),
        "monthly_sales": _newest(monthly, MONTHLY_PERIODS),
        "top_products": [
            {
                "product_id": p["product_id"],
                "product_name": p["product_name"],
                "total_sold": p["total_sold"],
                "total_revenue": float(quantize_money(p["total_revenue"])),
                "order_count": len(p["orders"]),
            }
            for p in top_products[:TOP_LIMIT]
        ],
        "top_customers": [
            {**c, "total_spent": float(quantize_money(c["total_spent"]))}
            for c in top_customers[:TOP_LIMIT]
        ],
        "conversion_rate": summary["conversion_rate"],
    }
