import secrets
import string

TOKEN_ALPHABET = string.ascii_lowercase + string.digits


def generate_token(length=32):
    """Generate a random lowercase alphanumeric token."""
    return ''.join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
