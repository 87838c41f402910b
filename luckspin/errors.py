"""Exceptions raised by the draw-and-landing engine and its collaborators."""


class LuckSpinError(Exception):
    """Base class for every error raised by luckspin"""


class InvalidConfiguration(LuckSpinError):
    """Sector list is empty or malformed at draw time"""


class ProgrammerError(LuckSpinError, IndexError):
    """Caller handed the animator something it must never receive"""


class ConfigurationWarning(UserWarning):
    """Advisory only: weights do not add up to 100"""


class CollaboratorError(LuckSpinError):
    """Recoverable failure reported by an upstream collaborator"""


class ParticipantNotFound(CollaboratorError):
    pass


class AlreadyPlayed(CollaboratorError):
    pass


class NotLoggedIn(CollaboratorError):
    pass


class ImportParseError(CollaboratorError):
    pass


class GeneratorError(CollaboratorError):
    pass
