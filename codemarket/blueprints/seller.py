"""Seller blueprint: /seller/*

Routes:
- GET /seller/sales?start=YYYY-MM-DD&end=YYYY-MM-DD: revenue per period
"""

from datetime import date

from flask import Blueprint, g, jsonify, request

from codemarket.decorators import seller_required
from codemarket.errors import InvalidInput
from codemarket.extensions import db
from codemarket.services.sales_aggregates import list_aggregates


seller_bp = Blueprint("seller", __name__, url_prefix="/seller")


def _date_arg(name):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise InvalidInput(f"'{name}' must be a date (YYYY-MM-DD)", field=name)


@seller_bp.route("/sales")
@seller_required
def sales():
    """Sales aggregates for the current seller, oldest period first."""
    start = _date_arg("start")
    end = _date_arg("end")
    if start and end and start > end:
        raise InvalidInput("'start' must not be after 'end'")

    rows = list_aggregates(db.session, g.seller.id, start, end)
    return jsonify({
        "success": True,
        "balance": g.seller.balance,
        "periods": [row.to_dict() for row in rows],
        "totalRevenue": sum(row.revenue for row in rows),
        "totalSales": sum(row.sales_count for row in rows),
    })
