"""Exception hierarchy shared by the recognition and structuring layers."""


class DocsheetError(Exception):
    """Base class for all pipeline errors."""


class SetupError(DocsheetError):
    """A page could not be rendered or a preview could not be generated."""


class ConfigurationError(DocsheetError):
    """A backend is missing a required credential or setting."""


class BackendError(DocsheetError):
    """A recognition backend call failed.

    Args:
        message: Human-readable description of the failure.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class BackendTimeoutError(BackendError):
    """A backend did not answer within its fixed time limit."""


class BackendAuthError(BackendError):
    """A backend rejected the supplied credentials."""


class RuleMismatchError(DocsheetError):
    """Find and replace correction lists have different lengths."""


class PreprocessingError(DocsheetError):
    """The external pre-processing service did not return a usable image."""


class DocumentStateError(DocsheetError):
    """An operation is not allowed in the document's current state."""


class DocumentBusyError(DocumentStateError):
    """A processing run is already in flight for the document."""


class ExportError(DocsheetError):
    """Nothing could be exported for the document."""
