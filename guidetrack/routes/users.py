import logging
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException, Query, status
from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError
from pydantic import BaseModel

from ..auth import get_current_user
from ..constants import ADMIN_ROLE, DEFAULT_ROLE, ROLES
from ..errors import UpstreamFetchError
from ..services.users import (
    create_managed_user,
    delete_user_record,
    filter_users,
    get_user_role,
    list_users,
    role_options,
    update_user_role,
    user_summary,
)

logger = logging.getLogger(__name__)

router = APIRouter()

class CreateUserRequest(BaseModel):
    name: str
    email: str
    password: str
    confirmPassword: str
    role: str = DEFAULT_ROLE

class RoleRequest(BaseModel):
    role: str

@contextmanager
def _account_errors(failure_message: str):
    try:
        yield
    except auth.EmailAlreadyExistsError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="El correo ya está registrado.") from exc
    except auth.UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario no encontrado.") from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    except FirebaseError as exc:
        logger.error("Firebase Auth call failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=failure_message) from exc

def require_admin(user=Depends(get_current_user)):
    try:
        role = get_user_role(user)
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    if role != ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Solo un administrador puede gestionar usuarios.")
    return user

def _check_role(role: str) -> None:
    if role not in ROLES:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Rol no válido: {role}")

@router.get("/users")
def read_users(
    role: str | None = Query(None),
    search: str | None = Query(None),
    admin=Depends(require_admin),
):
    try:
        users = list_users()
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    return {
        "users": filter_users(users, role, search),
        "summary": user_summary(users),
        "roles": role_options(users),
    }

@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(body: CreateUserRequest, admin=Depends(require_admin)):
    name, email = body.name.strip(), body.email.strip()
    if not name or not email or not body.password or not body.confirmPassword:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Completa todos los campos.")
    if body.password != body.confirmPassword:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Las contraseñas no coinciden.")
    _check_role(body.role)
    with _account_errors("No se pudo crear el usuario."):
        return create_managed_user(name, email, body.password, body.role)

@router.patch("/users/{uid}/role")
def change_role(uid: str, body: RoleRequest, admin=Depends(require_admin)):
    _check_role(body.role)
    with _account_errors("No se pudo actualizar el rol."):
        return update_user_role(uid, body.role)

@router.delete("/users/{uid}", status_code=status.HTTP_204_NO_CONTENT)
def remove_user(uid: str, admin=Depends(require_admin)):
    if uid == admin["uid"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No puedes eliminar tu propia cuenta.")
    with _account_errors("No se pudo eliminar el usuario."):
        delete_user_record(uid)
