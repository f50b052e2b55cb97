"""
Typed errors raised by the QA workflow.

Callers (admin/seller UI) render these as user-facing messages.
"""


class QAError(Exception):
    """Base class for every QA workflow error."""


class DuplicateAssessment(QAError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(
            f"Product '{product_id}' already has a QA assessment"
        )


class NotFound(QAError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class IllegalTransition(QAError):
    """The action is not valid from the assessment's current status."""

    def __init__(self, from_status: str, action: str):
        self.from_status = from_status
        self.action = action
        super().__init__(
            f"Cannot perform action '{action}' on assessment "
            f"with status '{from_status}'"
        )


class AlreadyTerminal(IllegalTransition):
    """The assessment is verified or rejected; no further action applies."""

    def __init__(self, from_status: str, action: str):
        super().__init__(from_status, action)
        self.args = (
            f"Cannot perform action '{action}': assessment is already "
            f"'{from_status}'",
        )


class StoreUnavailable(QAError):
    """Persistence failure. The whole transition is safe to retry."""


class InvalidActionPayload(QAError, ValueError):
    def __init__(self, action: str, field: str):
        self.action = action
        self.field = field
        super().__init__(f"Action '{action}' requires a non-empty '{field}'")
