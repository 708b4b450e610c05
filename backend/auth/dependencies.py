import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core.errors import AuthenticationError
from backend.database import get_db
from backend.models.provider import Provider

security = HTTPBearer(auto_error=False)


def get_current_provider(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Provider:
    if credentials is None:
        raise AuthenticationError("Access token is required")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid token") from exc

    provider_id = payload.get("sub")
    if not provider_id:
        raise AuthenticationError("Invalid token subject")

    provider = db.query(Provider).filter(Provider.id == provider_id).first()
    if provider is None or not provider.is_active:
        raise AuthenticationError("Provider not found")
    return provider
