import re
import uuid

MAX_SESSION_ID = 64


def new_session_id() -> str:
    return f"sse_{uuid.uuid4().hex[:12]}"


def new_client_event_id() -> str:
    return uuid.uuid4().hex


def normalize_session_id(session_id: str) -> str:
    """
    Normalize a session id taken from a query string.

    - trims whitespace
    - lowercase
    - removes illegal characters
    - length limited

    Returns "" when nothing usable is left (meaning: no filter).
    """

    if not session_id:
        return ""

    sid = session_id.strip().lower()

    # allow only safe chars
    sid = re.sub(r"[^a-z0-9_\-]", "", sid)

    # enforce max length
    return sid[:MAX_SESSION_ID]
