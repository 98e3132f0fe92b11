# Overview: Flask extension instances shared by the models, services and CLI.

# backend/retail_ledger/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Session is scoped per app context; each worker thread pushes its own.
db = SQLAlchemy()

# `flask db init|migrate|upgrade` manage schema changes for the ledger tables.
migrate = Migrate()
