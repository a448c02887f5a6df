"""Exceptions shared across domains."""


class ValidationFailure(ValueError):
    """Input rejected before evaluation.

    Carries the offending field so API callers can build a structured
    rejection. Nothing is recorded when this is raised.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {"error": "validation_failed", "field": self.field, "message": str(self)}
