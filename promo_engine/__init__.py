import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def create_app(config_name='default'):
    """Application factory: creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from promo_engine.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from promo_engine.promotions import promotions as promotions_blueprint
    app.register_blueprint(promotions_blueprint, url_prefix='/promotions')

    # ── Error Handlers ────────────────────────────────────────────
    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({'error': getattr(e, 'description', 'Bad request.')}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found.'}), 404

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({'error': 'Server error.'}), 500

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    return app


DEMO_PROMOTIONS = [
    {
        'name': '2x1 Quilleros', 'type': 'buy_x_get_y', 'priority': 10,
        'discount': {
            'discount_type': 'buy_x_get_y', 'discount_value': 0, 'applies_to': 'products',
            'buy_x_get_y_config': {'buy_quantity': 1, 'get_quantity': 1,
                                   'product_ids': ['quillero-1']},
        },
        'visuals': {'badge_text': '2x1', 'badge_color': '#ffffff', 'badge_bg_color': '#e11d48'},
    },
    {
        'name': 'Welcome code', 'type': 'promo_code', 'priority': 5,
        'discount': {'discount_type': 'percentage', 'discount_value': 10,
                     'applies_to': 'total', 'promo_code': 'WELCOME10',
                     'max_discount_amount': 10000},
    },
    {
        'name': '5000 off orders over 50000', 'type': 'threshold', 'priority': 3,
        'conditions': {'min_order_amount': 50000},
        'discount': {'discount_type': 'fixed_amount', 'discount_value': 5000,
                     'applies_to': 'total'},
    },
    {
        'name': 'Happy hour 15%', 'type': 'happy_hour', 'priority': 2,
        'conditions': {'days_of_week': [1, 2, 3, 4, 5],
                       'time_range': {'start_time': '15:00', 'end_time': '17:00'}},
        'discount': {'discount_type': 'percentage', 'discount_value': 15,
                     'applies_to': 'total'},
    },
    {
        'name': 'Free delivery over 40000', 'type': 'free_shipping', 'priority': 1,
        'conditions': {'min_order_amount': 40000, 'order_types': ['delivery']},
        'discount': {'discount_type': 'fixed_amount', 'discount_value': 0,
                     'applies_to': 'shipping'},
    },
]


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create the promotions and promotion_usages tables."""
        from promo_engine.promotions import models  # noqa: F401

        db.create_all()
        click.echo('✅  Database tables created.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate the database with sample promotions."""
        from promo_engine.promotions.models import PromotionRecord
        from promo_engine.promotions.repository import SqlPromotionRepository

        db.create_all()
        repo = SqlPromotionRepository()
        for record in DEMO_PROMOTIONS:
            if PromotionRecord.query.filter_by(name=record['name']).first():
                click.echo(f'ℹ️   "{record["name"]}" already exists.')
                continue
            repo.add(record)
            click.echo(f'✅  Created "{record["name"]}".')

    @app.cli.command('list-promotions')
    @click.option('--status', default=None, help='Only show promotions with this status')
    def list_promotions(status):
        """Show promotions, highest priority first."""
        from promo_engine.promotions.repository import SqlPromotionRepository

        rows = SqlPromotionRepository().list_all(status=status)
        if not rows:
            click.echo('No promotions found. Run flask seed-demo first.')
            return
        click.echo(f'{"Priority":<10} {"Status":<10} {"Type":<14} {"Used":<8} Name')
        click.echo('─' * 60)
        for p in rows:
            limit = p.conditions.usage_limit
            used  = f'{p.usage_count}/{limit}' if limit is not None else str(p.usage_count)
            click.echo(f'{p.priority:<10} {p.status.value:<10} {p.kind.value:<14} {used:<8} {p.name}')

    return app
