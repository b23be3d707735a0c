"""
extensions.py: unbound Flask extensions, attached in create_app() via init_app().

    from backend.app.extensions import db, limiter, ma
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Request schemas subclass marshmallow.Schema, not ma.Schema, so the unit
# tests can load them without an app context.
ma = Marshmallow()

# Per-client limits keyed on the remote address. Storage, headers and the
# on/off switch come from the RATELIMIT_* config keys.
limiter = Limiter(key_func=get_remote_address)
