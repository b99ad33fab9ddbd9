# backend/wsgi.py
from pharmacy_api import create_app

app = create_app()
