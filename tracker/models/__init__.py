"""
Fire-Proofing Tracker
Database models package.

The single ``db`` instance is bound to the app in ``create_app``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
