"""
Domain error taxonomy.

Services raise these synchronously; ``conduit.main`` registers one
exception handler that renders any ``ConduitError`` as
``{"errors": {"body": [message]}}`` with the class's ``status_code``.
"""


class ConduitError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ConduitError):
    status_code = 404


class ForbiddenError(ConduitError):
    status_code = 403


class ConflictError(ConduitError):
    status_code = 409


class ValidationError(ConduitError):
    status_code = 400


class UnauthenticatedError(ConduitError):
    status_code = 401
