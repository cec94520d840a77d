"""
WSGI Entry Point for Production Deployment
CNC Schedule Engine - Production Configuration

Usage with Gunicorn:
    gunicorn --config gunicorn_config.py wsgi:app
"""
import os

# Set production environment if not already set
if 'FLASK_ENV' not in os.environ:
    os.environ['FLASK_ENV'] = 'production'

from app import create_app, init_db

app = create_app(os.environ['FLASK_ENV'])

# Tables are normally created by Alembic; this covers a fresh SQLite file
try:
    init_db(app)
except Exception as e:
    app.logger.warning(f"Database initialization skipped or failed: {e}")

application = app

if __name__ == "__main__":
    app.run(debug=False, host='0.0.0.0', port=5000)
