from promo_engine import create_app, db
import os

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# Make sure the promotion tables exist before serving previews.
with app.app_context():
    try:
        db.create_all()
    except Exception as e:
        app.logger.error(f"⚠️ Startup table check failed: {e}")
        raise

if __name__ == "__main__":
    app.run()
