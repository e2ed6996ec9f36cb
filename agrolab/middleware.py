# agrolab/middleware.py

from .signals import set_current_user


class CurrentUserMiddleware:
    """
    Binds the session user for audit signals for the length of a request.

    Must sit after AuthenticationMiddleware. JWT users are only known once
    DRF authenticates the request, so API views bind the user again.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, "user", None)
        set_current_user(user if user is not None and user.is_authenticated else None)
        try:
            return self.get_response(request)
        finally:
            set_current_user(None)
