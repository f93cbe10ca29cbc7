from collections.abc import Callable, Generator, Iterable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from subcover.core.clock import Clock, utc_now
from subcover.core.config import Settings, get_settings
from subcover.core.security import decode_token
from subcover.db.session import SessionLocal
from subcover.models.teacher import Teacher, TeacherRole
from subcover.services.escalation import EscalationScheduler

security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_app_settings() -> Settings:
    return get_settings()


def get_clock() -> Clock:
    return utc_now


def get_scheduler(request: Request) -> EscalationScheduler | None:
    return getattr(request.app.state, "escalation_scheduler", None)


def get_current_teacher(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Teacher:
    token = credentials.credentials
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        teacher_id = payload.get("sub")
        if teacher_id is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc

    teacher = db.get(Teacher, teacher_id)
    if teacher is None:
        raise credentials_exception
    if not teacher.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Teacher account is inactive")
    return teacher


def require_roles(*roles: TeacherRole) -> Callable[[Teacher], Teacher]:
    allowed_roles: Iterable[TeacherRole] = set(roles)

    def role_checker(current_teacher: Teacher = Depends(get_current_teacher)) -> Teacher:
        if current_teacher.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_teacher

    return role_checker


def ensure_department_access(actor: Teacher, department: str) -> None:
    """Admins act anywhere; everyone else stays inside their own department."""
    if actor.role == TeacherRole.admin:
        return
    if actor.department != department:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Outside your department")
