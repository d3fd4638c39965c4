"""
Input Validators - Syntax checks for connection settings.

Each validator takes the raw string from configuration and returns a bool.
They are used by the configuration resolver; they never touch the network.
"""
import ipaddress
import re

# RFC 1123 label plus underscores (container and compose service names),
# not starting/ending with a hyphen
_HOST_LABEL = re.compile(r"^(?!-)[A-Za-z0-9_-]{1,63}(?<!-)$")

# MySQL identifiers are limited to 64 characters
MAX_DATABASE_NAME_LENGTH = 64
_FORBIDDEN_DATABASE_CHARS = {"/", "\\", ".", "\x00"}


def validate_host(host: str) -> bool:
    """
    Validate a host as an IP literal or a hostname.

    Args:
        host: Host name or address (e.g. "localhost", "db.internal", "10.0.0.5")

    Returns:
        True if the host is syntactically valid
    """
    if not host:
        return False

    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        pass

    name = host[:-1] if host.endswith(".") else host
    if len(name) > 253:
        return False

    return all(_HOST_LABEL.match(label) for label in name.split("."))


def validate_user(user: str) -> bool:
    return len(user) > 0


def validate_password(password: str) -> bool:
    return len(password) > 0


def validate_database(database: str) -> bool:
    """
    Validate a database (schema) name.

    Names must be non-empty, at most 64 characters, and free of path
    separators, dots and NUL bytes.
    """
    if not database or len(database) > MAX_DATABASE_NAME_LENGTH:
        return False
    return not any(ch in database for ch in _FORBIDDEN_DATABASE_CHARS)


def validate_port(port: str) -> bool:
    """Validate a TCP port given as a string."""
    try:
        value = int(port)
    except (TypeError, ValueError):
        return False
    return 1 <= value <= 65535
