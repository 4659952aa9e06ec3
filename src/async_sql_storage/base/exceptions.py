# src/async_sql_storage/base/exceptions.py


class StorageException(Exception):
    """Base class for every error a storage handler raises."""

    kind: str = "transport"
    http_status: int = 502

    def __init__(self, message: str = "The storage operation failed."):
        super().__init__(message)


class ObjectNotFoundException(StorageException):
    """Exception raised when an object with the specified identifier does not exist."""

    kind = "not_found"
    http_status = 404

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class ConflictException(StorageException):
    """Exception raised when the stored version tag no longer matches the expected one."""

    kind = "conflict"
    http_status = 409

    def __init__(self, message: str = "The object was modified concurrently."):
        super().__init__(message)


class KeyAlreadyExistsException(ConflictException):
    """Exception raised when trying to insert an item that would violate a unique constraint."""

    def __init__(self, message: str = "An object with the same key already exists."):
        super().__init__(message)


class UnsupportedQueryException(StorageException, NotImplementedError):
    """Exception raised when a predicate, sort field or statement shape cannot be expressed in SQL."""

    kind = "not_implemented"
    http_status = 501

    def __init__(self, message: str = "The query is not supported by this storage handler."):
        super().__init__(message)


class UnsupportedValueException(UnsupportedQueryException):
    """Exception raised when a value type has no SQL representation."""

    def __init__(self, message: str = "Unsupported value type."):
        super().__init__(message)


class TransportException(StorageException, RuntimeError):
    """Exception raised for connectivity, execution or malformed-statement failures."""

    kind = "transport"
    http_status = 502

    def __init__(self, message: str = "The database reported an error."):
        super().__init__(message)


class OperationCancelledException(StorageException):
    """Exception raised when an operation was abandoned because its deadline expired."""

    kind = "cancelled"
    http_status = 499

    def __init__(self, message: str = "The operation was cancelled."):
        super().__init__(message)
