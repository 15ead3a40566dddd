# routes/forms/__init__.py
"""
Form Instance Routes Package

- owner.py: Owner endpoints (create, list, history, resend), login required
- client.py: Public endpoints keyed by the secure token (open, drafts, submit)
- helpers.py: Controller wiring, request parsing and status mapping
"""

from flask import Blueprint

# Create the blueprint - sub-modules register their routes on it
forms_bp = Blueprint('forms', __name__, url_prefix='/forms')

# Import route modules AFTER blueprint creation
from . import owner
from . import client
