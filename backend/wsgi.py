# backend/wsgi.py
from washrent import create_app

app = create_app()
