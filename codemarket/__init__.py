import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from codemarket.config import config_by_name
from codemarket.errors import CheckoutError
from codemarket.extensions import db, migrate, login_manager, csrf, limiter
from codemarket.services.payment_gateway import EXTENSION_KEY, PaymentGateway


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Payment gateway (one per app, looked up via get_payment_gateway) ---
    app.extensions[EXTENSION_KEY] = PaymentGateway.from_config(app.config)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from codemarket import models  # noqa: F401

    # --- Register blueprints ---
    from codemarket.blueprints.checkout import checkout_bp
    from codemarket.blueprints.orders import orders_bp
    from codemarket.blueprints.seller import seller_bp
    from codemarket.blueprints.webhooks import webhooks_bp

    app.register_blueprint(checkout_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(seller_bp)
    app.register_blueprint(webhooks_bp)

    # Exempt webhooks from CSRF: raw body needed for Stripe signature verification
    csrf.exempt(webhooks_bp)

    # --- Error handlers ---
    @app.errorhandler(CheckoutError)
    def checkout_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({
            "success": False,
            "error": (e.name or "error").lower().replace(" ", "_"),
            "message": e.description,
        }), e.code

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({
            "success": False,
            "error": "internal_error",
            "message": "Something went wrong. Please try again.",
        }), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    @click.option("--price", default=4900, show_default=True,
                  help="Price of the paid demo repo, in minor units")
    def seed_demo(price):
        """Create a seller with a paid and a free repo, plus a buyer.

        Usage:
            flask seed-demo
            flask seed-demo --price 1990
        """
        from datetime import datetime, timezone

        from codemarket.models.user import User
        from codemarket.models.seller import SellerProfile
        from codemarket.models.repo import Repo

        seller_user = User.query.filter_by(email="seller@codemarket.local").first()
        if seller_user:
            click.echo("Demo data already exists: seller@codemarket.local")
            return

        # --- 1. Seller + payout-enabled profile ---
        seller_user = User(
            email="seller@codemarket.local",
            full_name="Demo Seller",
            role="seller",
            email_verified=True,
        )
        db.session.add(seller_user)
        db.session.flush()

        profile = SellerProfile(
            user_id=seller_user.id,
            business_name="Demo Components",
            business_email="seller@codemarket.local",
            payouts_enabled=True,
            verified_at=datetime.now(timezone.utc),
        )
        db.session.add(profile)

        # --- 2. Repos ---
        paid = Repo(
            owner_id=seller_user.id,
            name="Fancy Navbar",
            description="Responsive navbar component",
            price=price,
            status="active",
        )
        free = Repo(
            owner_id=seller_user.id,
            name="Starter Buttons",
            description="Free button set",
            price=0,
            status="active",
        )
        db.session.add_all([paid, free])

        # --- 3. Buyer ---
        buyer = User(
            email="buyer@codemarket.local",
            full_name="Demo Buyer",
            email_verified=True,
        )
        db.session.add(buyer)

        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Seller:    {seller_user.email} (id: {seller_user.id})")
        click.echo(f"  Profile:   {profile.business_name} (id: {profile.id})")
        click.echo(f"  Paid repo: {paid.name} @ {paid.price} (id: {paid.id})")
        click.echo(f"  Free repo: {free.name} (id: {free.id})")
        click.echo(f"  Buyer:     {buyer.email} (id: {buyer.id})")
        click.echo("=" * 60)
