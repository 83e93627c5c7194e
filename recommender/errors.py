"""Exceptions raised by the recommendation core."""


class RecommenderError(Exception):
    """Base class for recommendation errors."""


class StorageError(RecommenderError):
    """A collaborator failed to read or write persisted state."""


class UnknownEventError(RecommenderError):
    """A training event id could not be found in the profile log."""

    def __init__(self, event_id):
        super().__init__(f"training event not found: {event_id}")
        self.event_id = event_id
