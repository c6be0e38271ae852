class RelayError(Exception):
    """Base class for failures raised while relaying an image."""


class MissingInput(RelayError):
    """The request carried no image payload."""


class StorageFailure(RelayError):
    """The staged image could not be written to the object store."""


class InferenceFailure(RelayError):
    """The label-detection service rejected or failed the request."""


class ProcessingFailure(RelayError):
    """Catch-all for staging problems and anything unexpected."""
