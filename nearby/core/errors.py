class EngineError(ValueError):
    """Base for domain failures raised by the store.

    Subclasses ValueError so callers that only care about "bad request"
    can keep catching ValueError.
    """

    status_code = 400


class NotFound(EngineError):
    status_code = 404


class Forbidden(EngineError):
    status_code = 403


class InvalidArgument(EngineError):
    status_code = 400


class InvalidState(EngineError):
    status_code = 400
