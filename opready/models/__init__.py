"""
Operational Readiness Tracker
Shared SQLAlchemy handle.

Models live in sibling modules and import ``db`` from here:

    from opready.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
