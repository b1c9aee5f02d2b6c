from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clinic_scheduler.auth import jwt_handler
from clinic_scheduler.models.user import USER_ROLES
from clinic_scheduler.scheduling.coordinator import Actor
from clinic_scheduler.scheduling.state_machine import STAFF_ROLES

security = HTTPBearer()


def actor_from_token(token: str) -> Actor:
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    role = str(payload.get("role") or "").strip().lower()
    if role not in USER_ROLES:
        raise HTTPException(status_code=401, detail="Invalid token role")

    return Actor(user_id=int(subject), role=role)


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    return actor_from_token(credentials.credentials)


def require_staff(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Only doctors and admins can manage schedules.")
    return actor
