# backend/wsgi.py
from aluro import create_app

app = create_app()
