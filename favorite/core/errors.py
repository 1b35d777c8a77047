from enum import Enum


class ExtractionFailureKind(str, Enum):
    UNRATED = "unrated"
    NO_POSTER = "no_poster"
    FETCH_ERROR = "fetch_error"
    MALFORMED = "malformed"


class PersistenceFailureKind(str, Enum):
    WRITE_ERROR = "write_error"
    READ_ERROR = "read_error"


class ExtractionFailure(Exception):
    def __init__(self, kind: ExtractionFailureKind, message: str = ""):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind.value}: {message}" if message else kind.value)


class PersistenceFailure(Exception):
    def __init__(self, kind: PersistenceFailureKind, message: str = ""):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind.value}: {message}" if message else kind.value)


class TransientCursorFailure(Exception):
    """The crawl cursor is missing or could not be read."""
