import json
import sys

from mysql_session import MySQLSessionError, open_session, setup_logging
from mysql_session.core.config import get_settings

# User row looked up and the username it is expected to hold
USER_ID = "12345"
EXPECTED_USERNAME = "foo"


def check_user_lookup():
    setup_logging(get_settings().log_level)
    try:
        with open_session() as db:
            result = db.prepare_and_execute("SELECT data FROM users WHERE id = ?", [USER_ID])
            raw = result.first_value() if result is not None else None
    except MySQLSessionError as e:
        print(f"Error: {e}")
        return 1

    data = json.loads(raw) if raw else None
    if data and data.get("username") == EXPECTED_USERNAME:
        print("Test OK")
        return 0

    print(f"Failure?!\nExpected username '{EXPECTED_USERNAME}' but got {data!r}")
    return 1


if __name__ == "__main__":
    sys.exit(check_user_lookup())
