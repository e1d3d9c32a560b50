from fastapi import Header, HTTPException, status

from loyalvest_api.core.settings import settings


async def require_engine_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    """Guard administrative, governance and DAO callback endpoints."""

    if not settings.engine_api_key:
        return

    if x_api_key != settings.engine_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
