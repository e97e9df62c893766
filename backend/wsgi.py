# backend/wsgi.py
from transferhub import create_app

app = create_app()
