# backend/wsgi.py
from laundrypro import create_app

app = create_app()
