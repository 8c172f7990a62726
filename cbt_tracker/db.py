"""Database setup utilities.

Exposes the ``db`` object shared by the models and services. The
application factory binds it to the Flask app; import it from
``cbt_tracker`` rather than from this module directly.
"""
from __future__ import annotations

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
