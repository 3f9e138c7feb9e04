import threading
import time

from services.errors import ValidationFailed

_id_lock = threading.Lock()
_last_id = 0


def generate_id() -> str:
    """
    Time-derived id for records created without the server.
    Milliseconds since epoch, bumped so two calls never return the same value.
    """
    global _last_id
    with _id_lock:
        candidate = int(time.time() * 1000)
        _last_id = max(candidate, _last_id + 1)
        return str(_last_id)


def same_id(a, b) -> bool:
    # json-server hands back ints or strings depending on how a record was made
    if a is None or b is None:
        return False
    return str(a) == str(b)


def normalize_email(email: str | None) -> str:
    return (email or '').strip().lower()


def normalize_name(name: str | None) -> str:
    return (name or '').strip().casefold()


def require_fields(record: dict, *fields: str) -> None:
    """Raise ValidationFailed for the first field that is missing or blank."""
    for field in fields:
        value = record.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationFailed(field)


def public_user(user: dict) -> dict[str, str]:
    return {
        'id': str(user['id']),
        'name': user.get('name', ''),
        'email': user.get('email', ''),
        'avatar': user.get('avatar') or '',
    }
