"""Custom decorators for authorization."""
from functools import wraps
from flask_jwt_extended import get_jwt, verify_jwt_in_request
from rollcall.utils.helpers import error_response

INSTRUCTOR_ROLES = ('teacher', 'admin')


def instructor_required(f=None, locations=None):
    """
    Decorator to require a JWT whose role claim is teacher or admin.

    Usable bare or as ``@instructor_required(locations=[...])`` to look for
    the token somewhere other than the configured JWT_TOKEN_LOCATION.
    """
    if f is None:
        return lambda func: instructor_required(func, locations=locations)

    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request(locations=locations)
        claims = get_jwt()

        if claims.get('role') not in INSTRUCTOR_ROLES:
            return error_response("Instructor access required", 403)

        return f(*args, **kwargs)
    return decorated_function
