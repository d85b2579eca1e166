"""Error taxonomy shared by the ingestion, conversation and report pipelines."""


class AnalystError(Exception):
    """Base class for all application errors."""

    pass


class ValidationError(AnalystError):
    """Caller omitted a required field or supplied an unusable value."""

    pass


class NormalizationError(AnalystError):
    """Tabular input could not be parsed. Terminal for the affected document."""

    pass


class ProvisioningError(AnalystError):
    """Vector index could not be created within the retry budget."""

    pass


class UpstreamError(AnalystError):
    """Knowledge store (retrieval, generation or ingestion) call failed."""

    pass


class InvalidStatusTransitionError(AnalystError):
    """Requested document status change would move backwards or out of a terminal state."""

    def __init__(self, document_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Document {document_id} cannot move from {current} to {requested}"
        )
        self.document_id = document_id
        self.current = current
        self.requested = requested


class NotFoundError(AnalystError):
    """Referenced record does not exist (or belongs to another owner)."""

    pass


class DocumentNotFoundError(NotFoundError):
    pass


class SessionNotFoundError(NotFoundError):
    pass


class ReportNotFoundError(NotFoundError):
    pass


class ObjectNotFoundError(NotFoundError):
    pass


class TurnConflictError(AnalystError):
    """Another writer already appended a turn at this (session_id, sequence)."""

    def __init__(self, session_id: str, sequence: int) -> None:
        super().__init__(f"Turn {session_id}#{sequence} already exists")
        self.session_id = session_id
        self.sequence = sequence
