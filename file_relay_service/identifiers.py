import secrets
import string

URL_SAFE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "_-"
UID_LENGTH = 8

def generate_uid(size: int = UID_LENGTH) -> str:
    """Random URL-safe identifier; 64**8 possible values, uniqueness is not checked here."""
    return "".join(secrets.choice(URL_SAFE_ALPHABET) for _ in range(size))
