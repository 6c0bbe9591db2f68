"""
Error taxonomy for MG Trako
Every failure surfaced to a caller is one of these; the Flask error handler
maps them onto JSON bodies with the class status code.
"""


class MustGoError(Exception):
    """Base class for errors that are reported back to the caller"""
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.default_message())
        self.message = message or self.default_message()

    def default_message(self):
        return "Internal server error"

    def to_dict(self):
        return {"error": self.message}


class AuthenticationRequired(MustGoError):
    status_code = 401

    def default_message(self):
        return "Authentication required"


class AuthorizationDenied(MustGoError):
    status_code = 403

    def default_message(self):
        return "You don't have permission to perform this action"


class ValidationFailed(MustGoError):
    """
    Field-level validation failure

    Args:
        errors: dict mapping field name -> list of messages
    """
    status_code = 400

    def __init__(self, errors):
        self.errors = {field: list(messages) for field, messages in errors.items()}
        super().__init__("; ".join(
            message for messages in self.errors.values() for message in messages
        ))

    @classmethod
    def single(cls, field, reason):
        return cls({field: [reason]})

    def to_dict(self):
        return {"error": self.message, "fields": self.errors}


class NotFound(MustGoError):
    status_code = 404

    def __init__(self, entity_type, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found")


class PersistenceFailure(MustGoError):
    status_code = 500
