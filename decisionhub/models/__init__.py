"""
Decision Hub — SQLAlchemy models package.

The single ``db`` handle is created here and bound to the Flask app in
``create_app``. Model modules import it from this package:

    from decisionhub.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
