"""Concurrent settlement tests.

TestConcurrentSettlementSQLite always runs: it builds a second app on a
file-backed SQLite database (one connection per thread, busy timeout so
writers queue instead of failing) and settles from several threads at
once.

TestConcurrentSettlementPostgres needs real row locks, so it only runs
when TEST_DATABASE_URL points at PostgreSQL:

    TEST_DATABASE_URL=postgresql://localhost/codemarket_test pytest tests/test_concurrency.py
"""

import os
import threading
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from codemarket import create_app
from codemarket.config import TestConfig
from codemarket.errors import AlreadyProcessed
from codemarket.extensions import db
from codemarket.models.access import AccessGrant
from codemarket.models.repo import Repo
from codemarket.models.seller import SellerProfile
from codemarket.models.user import User
from codemarket.services import order_ledger
from codemarket.services.payment_gateway import EXTENSION_KEY
from codemarket.services.sales_aggregates import get_aggregate, period_for
from codemarket.services.settlement_service import settle

THREADS = 8


def _run_concurrently(app, gateway, calls):
    """Run each (buyer_id, intent_id) settlement on its own thread and session.

    Returns the list of outcomes: an order id or the exception raised.
    """
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def worker(i, buyer_id, intent_id):
        with app.app_context():
            barrier.wait()
            try:
                results[i] = settle(db.session, gateway, buyer_id, intent_id).order_id
            except Exception as e:
                results[i] = e
            finally:
                db.session.remove()

    threads = [
        threading.Thread(target=worker, args=(i, buyer_id, intent_id))
        for i, (buyer_id, intent_id) in enumerate(calls)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


# ---------------------------------------------------------------------------
# SQLite (file-backed, default run)
# ---------------------------------------------------------------------------


@pytest.fixture
def file_app(tmp_path, monkeypatch, gateway):
    """A second app bound to an on-disk SQLite file shared by all threads."""
    monkeypatch.setattr(
        TestConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{tmp_path / 'settle.db'}"
    )
    monkeypatch.setattr(
        TestConfig, "SQLALCHEMY_ENGINE_OPTIONS", {"connect_args": {"timeout": 30}}
    )
    app = create_app("testing")
    app.extensions[EXTENSION_KEY] = gateway
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _seed(app, gateway, amounts):
    """Create one seller and one pending order per amount, each for its own buyer.

    Returns (seller_id, [(buyer_id, intent_id, order_id), ...]).
    """
    with app.app_context():
        seller_user = User(email="seller@race.local", role="seller")
        db.session.add(seller_user)
        db.session.flush()
        profile = SellerProfile(
            user_id=seller_user.id,
            business_name="Race Components",
            payouts_enabled=True,
            verified_at=datetime.now(timezone.utc),
        )
        repo = Repo(owner_id=seller_user.id, name="Race Repo", price=amounts[0], status="active")
        db.session.add_all([profile, repo])
        db.session.flush()

        rows = []
        for i, amount in enumerate(amounts):
            buyer = User(email=f"racer{i}@race.local")
            db.session.add(buyer)
            db.session.flush()
            intent_id = f"pi_race_{i}"
            order = order_ledger.create_order(db.session, buyer.id, repo.id, amount, intent_id)
            gateway.add_intent(intent_id, amount)
            rows.append((buyer.id, intent_id, order.id))
        db.session.commit()
        return profile.id, rows


class TestConcurrentSettlementSQLite:

    def test_aggregate_counts_every_concurrent_settlement(self, file_app, gateway):
        amounts = [1000 + 100 * i for i in range(THREADS)]
        seller_id, rows = _seed(file_app, gateway, amounts)

        results = _run_concurrently(
            file_app, gateway, [(buyer_id, intent_id) for buyer_id, intent_id, _ in rows]
        )

        assert results == [order_id for _, _, order_id in rows]
        with file_app.app_context():
            agg = get_aggregate(db.session, seller_id, period_for())
            assert agg.sales_count == THREADS
            assert agg.revenue == sum(amounts)
            assert db.session.get(SellerProfile, seller_id).balance == sum(amounts)
            assert db.session.scalar(select(func.count()).select_from(AccessGrant)) == THREADS

    def test_same_intent_from_many_threads_settles_once(self, file_app, gateway):
        seller_id, rows = _seed(file_app, gateway, [4900])
        buyer_id, intent_id, order_id = rows[0]

        results = _run_concurrently(file_app, gateway, [(buyer_id, intent_id)] * THREADS)

        assert results.count(order_id) == 1
        assert all(isinstance(r, AlreadyProcessed) for r in results if r != order_id)
        with file_app.app_context():
            agg = get_aggregate(db.session, seller_id, period_for())
            assert agg.sales_count == 1
            assert agg.revenue == 4900
            assert db.session.scalar(select(func.count()).select_from(AccessGrant)) == 1


# ---------------------------------------------------------------------------
# PostgreSQL (row locks)
# ---------------------------------------------------------------------------


@pytest.mark.skipif(
    not os.environ.get("TEST_DATABASE_URL", "").startswith("postgresql"),
    reason="needs PostgreSQL (set TEST_DATABASE_URL)",
)
class TestConcurrentSettlementPostgres:

    def test_same_intent_settles_once(self, app, db_session, gateway, marketplace, make_order):
        order_id = make_order("pi_1")

        results = _run_concurrently(app, gateway, [(marketplace["buyer_id"], "pi_1")] * THREADS)

        assert results.count(order_id) == 1
        assert all(isinstance(r, AlreadyProcessed) for r in results if r != order_id)

        db_session.expire_all()
        agg = get_aggregate(db_session, marketplace["seller_id"], period_for())
        assert agg.revenue == 4900
        assert agg.sales_count == 1
        assert db_session.get(SellerProfile, marketplace["seller_id"]).balance == 4900
        assert db_session.scalar(select(func.count()).select_from(AccessGrant)) == 1

    def test_different_orders_for_one_seller_all_count(self, app, db_session, gateway,
                                                       marketplace, make_order):
        calls = []
        for i in range(THREADS):
            buyer = User(email=f"racer{i}@test.local")
            db_session.add(buyer)
            db_session.commit()
            make_order(f"pi_race_{i}", buyer_id=buyer.id)
            calls.append((buyer.id, f"pi_race_{i}"))

        results = _run_concurrently(app, gateway, calls)

        assert all(isinstance(r, str) for r in results)
        db_session.expire_all()
        agg = get_aggregate(db_session, marketplace["seller_id"], period_for())
        assert agg.revenue == THREADS * 4900
        assert agg.sales_count == THREADS
        assert db_session.get(SellerProfile, marketplace["seller_id"]).balance == THREADS * 4900
