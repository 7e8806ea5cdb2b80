class FormServiceError(Exception):
    """Base class for every error raised by the form service."""

    code = "form_service_error"


class FormNotFound(FormServiceError):
    code = "form_not_found"

    def __init__(self, form_id: str):
        super().__init__(f"form not found: {form_id}")
        self.form_id = form_id


class FormNotPublished(FormServiceError):
    code = "form_not_published"

    def __init__(self, form_id: str):
        super().__init__(f"form not published: {form_id}")
        self.form_id = form_id


class ValidationError(FormServiceError):
    """A submission failed the schema check for a single field."""

    code = "invalid_submission"
    reason = "invalid answer"

    def __init__(self, field_id: str, label: str | None = None):
        super().__init__(f"{self.reason} for: {label or field_id}")
        self.field_id = field_id
        self.label = label

    def as_detail(self) -> dict:
        return {"error": self.code, "field": self.field_id, "message": str(self)}


class MissingRequired(ValidationError):
    code = "missing_required"
    reason = "missing required field"


class InvalidValue(ValidationError):
    code = "invalid_value"
    reason = "invalid value"


class ValueNotAllowed(ValidationError):
    code = "value_not_allowed"
    reason = "value not in options"


class OutOfRange(ValidationError):
    code = "out_of_range"
    reason = "rating out of range"


class InvalidFormDefinition(FormServiceError):
    code = "invalid_form"


class FormLocked(FormServiceError):
    code = "form_locked"

    def __init__(self, form_id: str, message: str = ""):
        super().__init__(message or f"fields of published form {form_id} cannot change")
        self.form_id = form_id


class NotFormOwner(FormServiceError):
    code = "forbidden"

    def __init__(self, form_id: str):
        super().__init__(f"caller does not own form {form_id}")
        self.form_id = form_id


class StorageUnavailable(FormServiceError):
    code = "storage_unavailable"


class AuthError(FormServiceError):
    code = "unauthorized"


class DuplicateUser(FormServiceError):
    code = "user_exists"
