"""Error taxonomy shared by the triage components."""


class TriageError(Exception):
    """Base error. ``user_message`` is safe to show to the patient."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, detail: str = "", user_message: str | None = None):
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ConfigurationError(TriageError):
    """Required configuration (e.g. the backend credential) is missing."""

    user_message = "OpenAI API key not configured. Please contact the administrator."


class ValidationError(TriageError):
    """User input was rejected before any backend call."""

    user_message = "Please describe your symptoms"


class BackendError(TriageError):
    """The reasoning backend failed or returned nothing usable."""

    user_message = "Failed to analyze symptoms"


class PersistenceError(TriageError):
    """A store or upload operation failed."""

    user_message = "Your assessment could not be saved. Please try again later."


class SessionNotFoundError(TriageError):
    user_message = "Session not found"


class ConversationBusyError(TriageError):
    user_message = "Please wait for the current reply before sending another message."
