"""
Carbon Access Engine
SQLAlchemy database instance shared by every model module.

Usage:
    from carbonaccess.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
