import logging
import uuid

from headroom.consts import USER_ID_FILE_NAME
from headroom.fs import atomic_write_text, get_user_settings_dir, read_file_safe

LOGGER = logging.getLogger(__name__)

EPHEMERAL_USER_ID = "123456789"


def get_persistent_user_id() -> str:
    """
    Reads the user id from ~/.headroom/user_id, creating a fresh UUID when it is missing.
    Falls back to an ephemeral id when the settings directory is not writable.
    """
    user_id_file = get_user_settings_dir() / USER_ID_FILE_NAME
    existing = read_file_safe(user_id_file)
    if existing and existing.strip():
        return existing.strip()

    user_id = str(uuid.uuid4())
    try:
        atomic_write_text(user_id_file, user_id)
    except OSError:
        LOGGER.warning("Error accessing persistent user ID file, generating ephemeral ID", exc_info=True)
        return EPHEMERAL_USER_ID
    return user_id
