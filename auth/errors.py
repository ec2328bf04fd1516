"""
auth/errors.py -- Exception hierarchy for credential and access failures.

Unauthenticated is the umbrella for every reason a credential is rejected.
The specific subclasses exist for logging and tests; the HTTP layer only ever
reports the umbrella so callers cannot tell which check failed.

  AuthError
  |-- Unauthenticated
  |   |-- MalformedCredential   wrong shape, bad base64, bad JSON, missing claims
  |   |-- SignatureMismatch     recomputed HMAC differs from the supplied one
  |   `-- Expired               now >= exp
  |-- UserNotFound              valid credential, subject unknown to the store
  `-- Forbidden                 user resolved but fails the role gate

ConfigurationError lives in core/config.py -- it is a startup failure, not a
per-request one.
"""


class AuthError(Exception):
    """Base class for per-request authentication and authorization failures."""


class Unauthenticated(AuthError):
    pass


class MalformedCredential(Unauthenticated):
    pass


class SignatureMismatch(Unauthenticated):
    pass


class Expired(Unauthenticated):
    pass


class UserNotFound(AuthError):
    pass


class Forbidden(AuthError):
    pass
