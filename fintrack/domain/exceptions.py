"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidPatternError(DomainException):
    """Bank pattern is missing a sender matcher or contains an invalid regex"""

    pass


class EnrichmentAPIError(DomainException):
    """Enrichment API returned an error or is unavailable"""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class PersistenceError(DomainException):
    """Storage rejected the batch; nothing from the run was committed"""

    pass


class IngestionInProgressError(DomainException):
    """Another ingestion or reclassification run is active for the same user"""

    pass
