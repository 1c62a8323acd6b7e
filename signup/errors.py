from __future__ import annotations


class SignupError(Exception):
    pass


class NotAuthorizedError(SignupError):
    pass


class InvalidArgumentError(SignupError, ValueError):
    pass


class UnsatisfiableDivisionError(InvalidArgumentError):
    pass


class PersistenceError(SignupError, RuntimeError):
    pass
