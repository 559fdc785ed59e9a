# Overview: Flask extension instances for database, migrations and notifications.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .notifications import Notifier

db = SQLAlchemy()
migrate = Migrate()
notifier = Notifier()
