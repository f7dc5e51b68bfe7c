import hashlib
import hmac
import logging
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import decode_token
from app.db.session import get_db
from app.models.user import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    subject = decode_token(credentials.credentials)
    if not subject:
        raise credentials_exception
    try:
        user_id = uuid.UUID(subject)
    except ValueError:
        raise credentials_exception
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise credentials_exception
    return user


def get_current_staff_user(current_user: User = Depends(get_current_user)) -> User:
    """Employees and admins only (cash desk, booking management)."""
    if not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required",
        )
    return current_user


def sign_payload(body: bytes, secret: Optional[str] = None) -> str:
    secret = secret or settings.PAYMENT_WEBHOOK_SECRET
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


async def verify_gateway_signature(request: Request) -> None:
    """Reject payment callbacks whose body is not signed with the shared secret."""
    signature = request.headers.get(settings.PAYMENT_SIGNATURE_HEADER)
    body = await request.body()
    expected = sign_payload(body).encode()
    if not signature or not hmac.compare_digest(signature.strip().lower().encode(), expected):
        logger.warning("Rejected unsigned or mis-signed payment callback to %s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid payment signature",
        )
