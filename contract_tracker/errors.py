from dataclasses import dataclass


class ContractTrackerError(Exception):
    """Base class for errors raised by the repository, engine and adapters"""

    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(ContractTrackerError):
    kind = "validation_error"


class NotFoundError(ContractTrackerError):
    kind = "not_found"


class StoreError(ContractTrackerError):
    kind = "store_error"


class ExtractionFailed(ContractTrackerError):
    kind = "extraction_failed"


class UnparsableResponse(ContractTrackerError):
    kind = "unparsable_response"


class TransportError(ContractTrackerError):
    kind = "transport_error"


class PermissionDenied(ContractTrackerError):
    kind = "permission_denied"


@dataclass
class Failure:
    """Structured failure returned by the AI engine and the CRM adapter"""
    error: str
    message: str
    success: bool = False

    @classmethod
    def from_exception(cls, exc: ContractTrackerError) -> "Failure":
        return cls(error=exc.kind, message=exc.message or str(exc))

    def to_exception(self) -> ContractTrackerError:
        for error_class in ContractTrackerError.__subclasses__():
            if error_class.kind == self.error:
                return error_class(self.message)
        return ContractTrackerError(self.message)
