# backend/wsgi.py
from fundflow import create_app

app = create_app()
