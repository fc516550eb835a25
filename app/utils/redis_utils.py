"""Redis connection utilities.

Builds the Redis URL used as the Dramatiq broker transport.
"""

from app.config.settings import settings


def get_redis_url() -> str:
    """
    Build Redis URL from settings.

    WARNING: This URL contains the password in plaintext. Use
    get_redis_url_masked() for logging.

    Returns:
        str: redis://[:password@]host:port/db
    """
    if settings.redis_password:
        return (
            f"redis://:{settings.redis_password}@"
            f"{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
        )
    return f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"


def get_redis_url_masked() -> str:
    """Build Redis URL with the password replaced by asterisks."""
    if settings.redis_password:
        return f"redis://:****@{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
    return f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
