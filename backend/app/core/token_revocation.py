"""
Token Revocation System using Redis.

Blacklists individual tokens on logout and revokes every token of a
principal (user or driver) when the account is archived.
"""

import logging
from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Redis key prefixes
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
PRINCIPAL_TOKENS_PREFIX = "principal:tokens:"


def _ttl_seconds() -> int:
    # Entries only need to outlive the longest-lived token
    return settings.access_token_expire_minutes * 60


def _principal_key(kind: str, principal_id: int) -> str:
    return f"{PRINCIPAL_TOKENS_PREFIX}{kind}:{principal_id}:revoked"


async def revoke_token(token: str, principal_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        await redis_module.redis_client.set(
            f"{TOKEN_BLACKLIST_PREFIX}{token}", str(principal_id), ex=_ttl_seconds()
        )
        return True
    except Exception as e:
        logger.error("Error revoking token for principal %s: %s", principal_id, e)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    If Redis is unreachable the request is allowed (availability over
    strictness); the error is logged.
    """
    try:
        exists = await redis_module.redis_client.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}")
        return exists > 0
    except Exception as e:
        logger.error("Error checking token revocation: %s", e)
        return False


async def revoke_all_principal_tokens(kind: str, principal_id: int) -> bool:
    """
    Revoke all active tokens of a user or driver.

    Called when a driver is archived to terminate their sessions.
    """
    try:
        await redis_module.redis_client.set(_principal_key(kind, principal_id), "1", ex=_ttl_seconds())
        return True
    except Exception as e:
        logger.error("Error revoking all tokens for %s %s: %s", kind, principal_id, e)
        return False


async def are_principal_tokens_revoked(kind: str, principal_id: int) -> bool:
    try:
        exists = await redis_module.redis_client.exists(_principal_key(kind, principal_id))
        return exists > 0
    except Exception as e:
        logger.error("Error checking token revocation for %s %s: %s", kind, principal_id, e)
        return False


async def clear_principal_token_revocation(kind: str, principal_id: int) -> bool:
    """
    Clear the revocation flag, called when an archived driver is restored.
    """
    try:
        await redis_module.redis_client.delete(_principal_key(kind, principal_id))
        return True
    except Exception as e:
        logger.error("Error clearing token revocation for %s %s: %s", kind, principal_id, e)
        return False
