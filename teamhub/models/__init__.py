"""
TeamHub Collaboration Platform
SQLAlchemy extension instance shared by every model module.

Usage:
    from teamhub.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
