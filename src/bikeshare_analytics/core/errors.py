"""
Translation and execution error types.

Every user-visible failure of the translator is a TranslationError subclass so the
HTTP boundary can turn it into a structured response instead of a stack trace.
"""


class TranslationError(Exception):
    """Raised when a question cannot be turned into a query plan."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidQuestionError(TranslationError):
    """Question is empty, too long, or carries SQL fragments."""


class NoRelevantTablesError(TranslationError):
    """No table cleared the relevance floor for the question."""

    def __init__(self, question: str):
        self.question = question
        super().__init__(
            "No relevant tables found for this question. "
            "Try asking about trips, stations, bikes or daily weather."
        )


class PlanInvariantError(TranslationError):
    """Assembled plan violates a structural invariant."""


class QueryExecutionError(Exception):
    """Raised by the data store when a generated query fails to execute."""

    def __init__(self, message: str, query_text: str | None = None):
        self.message = message
        self.query_text = query_text
        super().__init__(message)
