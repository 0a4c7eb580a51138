# backend/wsgi.py
from brfportal import create_app

app = create_app()
