"""Authentication module.

Decodes Bearer JWTs issued by the identity service.
"""

from homecare.modules.auth.jwt import (
    TokenPayload,
    create_access_token,
    decode_token,
    get_current_user_id,
    require_admin,
    validate_token,
)

__all__ = [
    "TokenPayload",
    "create_access_token",
    "decode_token",
    "get_current_user_id",
    "require_admin",
    "validate_token",
]
