"""
DDI Evidence Mining Engine - Exceptions
"""


class EvidenceEngineError(Exception):
    """Base class for engine errors"""


class DocumentRepositoryError(EvidenceEngineError):
    """Search or fetch against an external document/label repository failed"""


class ResolutionServiceError(EvidenceEngineError):
    """The drug identifier resolution service failed"""


class UnknownSourceTypeError(EvidenceEngineError, ValueError):
    """A raw record names a source type outside the supported set"""
