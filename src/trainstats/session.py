import os
import uuid
import datetime
import threading

_SESSION_ID = None
_PROCESS_UID = None


def generate_session_id():
    ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    rand = uuid.uuid4().hex[:6]
    return f"session_{ts}_{rand}"


def get_session_id():
    """Process-wide session id, used for log directories."""
    global _SESSION_ID
    if _SESSION_ID is None:
        _SESSION_ID = generate_session_id()
    return _SESSION_ID


def get_process_uid() -> str:
    """
    Identifier unique to this Python process.

    Generated once per process and stable afterwards. The pid is kept as a
    prefix for readability; the random suffix guards against pid reuse.
    """
    global _PROCESS_UID
    if _PROCESS_UID is None:
        _PROCESS_UID = f"{os.getpid()}-{uuid.uuid4().hex[:12]}"
    return _PROCESS_UID


def get_hardware_uid() -> str:
    """Identifier for the host machine, derived from its hardware address."""
    return f"{uuid.getnode():012x}"


def generate_worker_id() -> str:
    """Process uid combined with the calling thread id."""
    return f"{get_process_uid()}_{threading.get_ident()}"
