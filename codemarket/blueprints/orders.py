"""Orders blueprint: buyer-facing reads.

Routes:
- GET /orders                  : the buyer's orders, newest first
- GET /library                 : ids of every repo the buyer can open
- GET /repos/<repo_id>/access  : whether the buyer may open a repo
"""

from flask import Blueprint, jsonify
from flask_login import current_user

from codemarket.decorators import buyer_required
from codemarket.extensions import db
from codemarket.services import access_grants, order_ledger

orders_bp = Blueprint("orders", __name__)


@orders_bp.route("/orders")
@buyer_required
def list_orders():
    orders = order_ledger.list_orders_for_buyer(db.session, current_user.id)
    return jsonify({"success": True, "orders": [o.to_dict() for o in orders]})


@orders_bp.route("/library")
@buyer_required
def library():
    repo_ids = access_grants.list_repo_ids_for_user(db.session, current_user.id)
    return jsonify({"success": True, "repoIds": list(repo_ids)})


@orders_bp.route("/repos/<repo_id>/access")
@buyer_required
def repo_access(repo_id):
    allowed = access_grants.has_access(db.session, current_user.id, repo_id)
    return jsonify({"success": True, "hasAccess": allowed})
