"""
Error taxonomy for the data layer.

Only Unreachable is handled internally (it switches the client to the local
mirror). Everything else propagates to the caller, which turns it into a
short inline message with user_message().
"""


class DataLayerError(Exception):
    message = "Something went wrong. Please try again."


class Unreachable(DataLayerError):
    message = "The server is unreachable."


class RemoteRejected(DataLayerError):
    message = "The server rejected the request. Please try again."

    def __init__(self, status: int | None, url: str):
        super().__init__(f"{status} from {url}")
        self.status = status
        self.url = url


class InvalidCredentials(DataLayerError):
    message = "Invalid email or password"


class DuplicateEmail(DataLayerError):
    message = "Email already exists"


class ValidationFailed(DataLayerError):
    message = "Please fill in all required fields"

    def __init__(self, field: str):
        super().__init__(f"'{field}' is required")
        self.field = field


class DuplicateCategory(ValidationFailed):
    message = "A category with that name already exists"

    def __init__(self, name: str):
        super().__init__('name')
        self.args = (f"category '{name}' already exists",)
        self.name = name


class NotFound(DataLayerError):
    message = "That item no longer exists."

    def __init__(self, collection: str, record_id):
        super().__init__(f"{collection}/{record_id} not found")
        self.collection = collection
        self.record_id = record_id


class CascadeFailed(DataLayerError):
    message = "Could not finish deleting everything. Please try again."

    def __init__(self, kind: str, errors: list[Exception]):
        super().__init__(f"{kind} failed: {len(errors)} request(s) did not succeed")
        self.kind = kind
        self.errors = errors


def user_message(error: Exception) -> str:
    """Short message suitable for showing inline next to a form."""
    if isinstance(error, DataLayerError):
        return error.message
    return DataLayerError.message
