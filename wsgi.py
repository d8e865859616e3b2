"""WSGI entry point for Gunicorn (gunicorn wsgi:app)."""
import logging
import os

from app import create_app

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
)

# APP_CONFIG selects the config class, e.g. config.TestingConfig
app = create_app(os.getenv('APP_CONFIG', 'config.Config'))

if __name__ == "__main__":
    app.run()
