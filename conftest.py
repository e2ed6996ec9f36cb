import pytest


@pytest.fixture(autouse=True)
def _disable_security_redirects(settings):
    # Keep the test client on http://testserver
    settings.SECURE_SSL_REDIRECT = False
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0


@pytest.fixture(autouse=True)
def _reset_current_user():
    from agrolab.signals import set_current_user

    # Audit signals read a thread-local; never leak it between tests.
    set_current_user(None)
    yield
    set_current_user(None)
