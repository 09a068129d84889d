from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from templevisit.core.config import settings
from templevisit.core.security import decode_token
from templevisit.services.payment_gateway import SettlementGateway
from templevisit.services.razorpay_client import RazorpayConfig, RazorpayProcessor

bearer = HTTPBearer(auto_error=False)

STAFF_ROLES = ("staff", "admin")


@dataclass(frozen=True)
class Caller:
    """Identity asserted by the auth service's token."""
    id: str
    role: str


def get_current_user(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Caller:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("sub")
    if not user_id or payload.get("type", "access") != "access":
        raise HTTPException(status_code=401, detail="Invalid token")
    return Caller(id=str(user_id), role=str(payload.get("role") or "customer"))


def require_roles(*roles: str):
    def _guard(user: Caller = Depends(get_current_user)) -> Caller:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard


def get_payment_gateway() -> SettlementGateway:
    if not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
        raise HTTPException(status_code=500, detail="Payment gateway is not configured")
    processor = RazorpayProcessor(RazorpayConfig(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        base_url=settings.RAZORPAY_API_BASE,
        timeout=settings.RAZORPAY_TIMEOUT,
        max_retries=settings.RAZORPAY_MAX_RETRIES,
    ))
    return SettlementGateway(processor, settings.RAZORPAY_KEY_SECRET)
