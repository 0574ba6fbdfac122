"""
Dashboard analytics

Aggregates computed in memory from the order, customer and product
collections already loaded by the data context. Several dashboard figures
(session length, bounce rate, trend noise) are not measured anywhere; those
are synthetic and every random draw goes through the injectable ``jitter``
callable so the measured part can be checked exactly.

Nothing here raises on bad data: records with a missing or unparseable
created_at are simply not counted as recent.
"""

import logging
import math
import random
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from schemas import (
    AggregateReport,
    DeviceShare,
    SalesOverview,
    SalesPoint,
    TopPage,
    TopProduct,
    TrendPoint,
)

logger = logging.getLogger(__name__)

Jitter = Callable[[int, int], int]

RANGE_CHOICES = {"7days": 7, "30days": 30, "90days": 90}

# (path, label, share of page views, share counted as unique)
FIXED_PAGES = [
    ("/", "Home", 0.35, 0.25),
    ("/products", "Products", 0.25, 0.18),
]
PRODUCT_PAGE_SHARES = [0.10, 0.08, 0.06]
PRODUCT_PAGE_UNIQUE_RATIO = 0.7

DEVICE_SHARES = [("Mobile", 60), ("Desktop", 30), ("Tablet", 10)]


def random_jitter(low: int, high: int) -> int:
    return random.randint(low, high)


def zero_jitter(low: int, high: int) -> int:
    return low


def _get(record, name, default=None):
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def _number(value, cast=float):
    try:
        return cast(value or 0)
    except (TypeError, ValueError):
        return cast(0)


def _key(value):
    # ids and statuses read from documents can be lists or dicts
    try:
        hash(value)
    except TypeError:
        return None
    return value


def parse_timestamp(value) -> Optional[datetime]:
    """Return an aware UTC datetime, or None when the value can't be read as one."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    return parse_timestamp(now) if now is not None else datetime.now(timezone.utc)


def _days(range_days) -> int:
    try:
        return max(1, int(range_days))
    except (TypeError, ValueError):
        return 1


def is_recent(record, cutoff: datetime) -> bool:
    created = parse_timestamp(_get(record, "created_at"))
    return created is not None and created >= cutoff


def _day_buckets(days: int, now: datetime) -> List[date]:
    today = now.date()
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def _orders_per_day(orders: Iterable) -> Counter:
    per_day = Counter()
    for order in orders:
        created = parse_timestamp(_get(order, "created_at"))
        if created is not None:
            per_day[created.date()] += 1
    return per_day


def compute_aggregates(orders, customers, products, range_days: int,
                       now: Optional[datetime] = None, jitter: Optional[Jitter] = None) -> AggregateReport:
    """
    Summary metrics for the trailing ``range_days`` window.

    - visitors: distinct customer ids across recent orders, falling back to the
      recent order count when none resolve.
    - page_views_estimate: 3 per recent order plus 12 per product in the
      catalogue. A proxy, not a measurement.
    - new_customers counts customers created in the window. returning_customers
      counts recent orders placed by customers created before the window, so
      one returning customer with three orders counts three times.
    """
    jitter = jitter or random_jitter
    days = _days(range_days)
    now = _now(now)
    cutoff = now - timedelta(days=days)

    orders = list(orders or [])
    customers = list(customers or [])
    products = list(products or [])

    recent_orders = [o for o in orders if is_recent(o, cutoff)]
    customer_ids = {_key(_get(o, "customer_id")) for o in recent_orders} - {None, ""}
    visitors = len(customer_ids) or len(recent_orders)
    page_views = 3 * len(recent_orders) + 12 * len(products)

    new_customers = sum(1 for c in customers if is_recent(c, cutoff))
    created_by_id = {_key(_get(c, "id")): parse_timestamp(_get(c, "created_at")) for c in customers}
    created_by_id.pop(None, None)
    returning = 0
    for order in recent_orders:
        created = created_by_id.get(_key(_get(order, "customer_id")))
        if created is not None and created < cutoff:
            returning += 1

    per_day = _orders_per_day(orders)
    trend = []
    for day in _day_buckets(days, now):
        count = per_day.get(day, 0)
        trend.append(TrendPoint(
            date=day.isoformat(),
            orders=count,
            visitors=count + jitter(0, 20),
            page_views=count * 3 + jitter(0, 60),
        ))

    top_pages = [
        TopPage(page=path, label=label, views=math.floor(page_views * share),
                unique_views=math.floor(page_views * unique))
        for path, label, share, unique in FIXED_PAGES
    ]
    for product, share in zip(products, PRODUCT_PAGE_SHARES):
        views = math.floor(page_views * share)
        top_pages.append(TopPage(
            page=f"/products/{_get(product, 'id', '')}",
            label=str(_get(product, "name") or ""),
            views=views,
            unique_views=math.floor(views * PRODUCT_PAGE_UNIQUE_RATIO),
        ))

    devices = [
        DeviceShare(device=name, visitors=math.floor(visitors * pct / 100), percentage=pct)
        for name, pct in DEVICE_SHARES
    ]

    logger.debug("Aggregates over %d days: %d recent orders, %d visitors", days, len(recent_orders), visitors)

    return AggregateReport(
        range_days=days,
        visitors=visitors,
        page_views_estimate=page_views,
        avg_session_seconds=200 + jitter(0, 299),
        bounce_rate_pct=25 + jitter(0, 39),
        new_customers=new_customers,
        returning_customers=returning,
        trend=trend,
        top_pages=top_pages,
        devices=devices,
    )


def compute_sales_overview(orders, range_days: int, now: Optional[datetime] = None) -> SalesOverview:
    """Revenue, order counts and best sellers for the trailing window."""
    days = _days(range_days)
    now = _now(now)
    cutoff = now - timedelta(days=days)
    recent_orders = [o for o in (orders or []) if is_recent(o, cutoff)]

    revenue = 0.0
    by_status = Counter()
    by_product = defaultdict(lambda: {"name": "", "quantity": 0, "revenue": 0.0})
    revenue_per_day = defaultdict(float)
    for order in recent_orders:
        total = _number(_get(order, "total"))
        revenue += total
        status = _get(order, "status")
        by_status[_key(getattr(status, "value", status)) or "unknown"] += 1
        revenue_per_day[parse_timestamp(_get(order, "created_at")).date()] += total
        items = _get(order, "items")
        for item in items if isinstance(items, list) else []:
            entry = by_product[_key(_get(item, "product_id"))]
            quantity = _number(_get(item, "quantity"), int)
            entry["name"] = entry["name"] or str(_get(item, "product_name") or "")
            entry["quantity"] += quantity
            entry["revenue"] += _number(_get(item, "price")) * quantity

    top_products = sorted(by_product.items(), key=lambda kv: kv[1]["revenue"], reverse=True)[:5]
    per_day = _orders_per_day(recent_orders)

    return SalesOverview(
        range_days=days,
        revenue=round(revenue, 2),
        orders=len(recent_orders),
        avg_order_value=round(revenue / len(recent_orders), 2) if recent_orders else 0,
        orders_by_status=dict(by_status),
        top_products=[
            TopProduct(product_id=str(pid), name=p["name"], quantity=p["quantity"], revenue=round(p["revenue"], 2))
            for pid, p in top_products
        ],
        timeseries=[
            SalesPoint(day=day.isoformat(), revenue=round(revenue_per_day.get(day, 0.0), 2),
                       orders=per_day.get(day, 0))
            for day in _day_buckets(days, now)
        ],
    )
