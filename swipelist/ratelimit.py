import os

from slowapi import Limiter
from slowapi.util import get_remote_address

FRIEND_REQUEST_RATE_LIMIT = os.environ.get("FRIEND_REQUEST_RATE_LIMIT", "20/minute")

limiter = Limiter(key_func=get_remote_address)
