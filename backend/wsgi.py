# backend/wsgi.py
from pos_backend import create_app

app = create_app()
