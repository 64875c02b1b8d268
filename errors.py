"""
Error taxonomy shared by the storage layer and the HTTP handlers.

Every error carries the status code it is rendered with, so the API only
needs one handler to produce the {"error": message} envelope.
"""


class SchoolError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingRequiredField(SchoolError):
    status_code = 400
    default_message = "Missing required fields"


class ValidationError(SchoolError):
    status_code = 400
    default_message = "Invalid request"


class MalformedIdentifier(SchoolError):
    status_code = 400
    default_message = "Invalid id format"


class InvalidReference(SchoolError):
    status_code = 400
    default_message = "Referenced record not found"


class ReferentialIntegrityViolation(SchoolError):
    status_code = 400
    default_message = "Record is still referenced"


class NotFound(SchoolError):
    status_code = 404
    default_message = "Not found"


class InternalStorageError(SchoolError):
    status_code = 500
    default_message = "Internal Server Error"


class StorageTimeout(InternalStorageError):
    status_code = 503
    default_message = "Storage timed out, retry the request"
