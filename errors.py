"""Exceptions shared by the store, the emergency flow and the HTTP layer."""


class MyDoctorError(Exception):
    status_code = 500
    kind = "error"

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {"error": self.message, "kind": self.kind}


class InvalidInput(MyDoctorError):
    status_code = 400
    kind = "invalid_input"


class Unauthorized(MyDoctorError):
    status_code = 401
    kind = "unauthorized"


class NotFound(MyDoctorError):
    status_code = 404
    kind = "not_found"


class NoDoctorsAvailable(NotFound):
    """No doctor record carried a usable location."""

    def __init__(self, message="No nearest doctors found"):
        super().__init__(message)


class Conflict(MyDoctorError):
    status_code = 409
    kind = "conflict"


class CollaboratorFailure(MyDoctorError):
    """A store, data file or Slack call failed."""

    status_code = 503
    kind = "collaborator_failure"
