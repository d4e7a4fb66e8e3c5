"""
Owner resolution for incoming requests.

All records currently belong to one implicit owner. Handlers receive the
owner through this dependency and pass it to the store explicitly, so an
authenticated lookup can replace it without touching the store.
"""

from utilities.config import config


async def resolve_owner_id() -> str:
    """Return the owner id for the current request."""
    return config.default_owner_id
