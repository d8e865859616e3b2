"""Middleware for salon context."""
from functools import wraps
from flask import session, g, jsonify
from app.database import db_session
from app.models import Salon, Staff


def load_salon_context():
    """
    Load the current salon and staff member into g (Flask's per-request global).

    Called before each request. Authentication is handled upstream, which
    stores salon_id (and optionally staff_id) in the Flask session.
    Sets g.salon_id and g.staff_id when the session carries a valid salon.
    """
    g.salon_id = None
    g.staff_id = None

    salon_id = session.get('salon_id')
    if not salon_id:
        return

    salon = db_session.query(Salon).filter_by(id=salon_id, active=True).first()
    if not salon:
        # Salon removed or deactivated, clear it
        session.pop('salon_id', None)
        session.pop('staff_id', None)
        return

    g.salon_id = salon.id

    staff_id = session.get('staff_id')
    if staff_id:
        staff = db_session.query(Staff).filter_by(id=staff_id, salon_id=salon.id, is_active=True).first()
        if staff:
            g.staff_id = staff.id
        else:
            session.pop('staff_id', None)


def require_salon(f):
    """
    Decorator: Require a salon context.

    API endpoints answer with a JSON 401 instead of redirecting.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('salon_id') is None:
            return jsonify({
                'status': 'error',
                'error': 'UNAUTHENTICATED',
                'message': 'Salon context required'
            }), 401
        return f(*args, **kwargs)
    return decorated_function
