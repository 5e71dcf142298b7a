"""External service integrations."""

from fieldauth.integrations.sentry import capture_exception, init_sentry, set_user

__all__ = ["capture_exception", "init_sentry", "set_user"]
