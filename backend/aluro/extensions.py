# Overview: shared Flask extension instances; bound to the app in create_app().

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# SQLAlchemy session + metadata for every model under aluro.models
db = SQLAlchemy()
# Alembic integration (flask db upgrade / migrate)
migrate = Migrate()
