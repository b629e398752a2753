"""WSGI entry point: gunicorn -c deployment/gunicorn_config.py"""
from app import create_app

app = create_app()
