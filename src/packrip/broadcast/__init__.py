from .publisher import ResultBroadcaster
from .token import TokenError, sign_broadcast_token, verify_token

__all__ = ["ResultBroadcaster", "TokenError", "sign_broadcast_token", "verify_token"]
