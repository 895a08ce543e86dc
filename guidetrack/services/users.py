"""
Managed user accounts.

Each account is a Firebase Auth identity plus a profile document in the users
collection (``name``, ``email``, ``role``). The role is also stored as a
custom claim so ID tokens carry it without a Firestore read.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from firebase_admin import auth, firestore
from google.api_core import exceptions as google_exceptions

from ..auth import get_firebase_app
from ..config import get_settings
from ..constants import ADMIN_ROLE, DEFAULT_ROLE, ROLES
from ..errors import UpstreamFetchError
from .firestore import get_db

logger = logging.getLogger(__name__)

def _users():
    return get_db().collection(get_settings().firestore_users_collection)

def _profile(doc) -> Dict[str, Any]:
    data = doc.to_dict() or {}
    return {**data, "id": doc.id, "role": data.get("role") or DEFAULT_ROLE}

def list_users() -> List[Dict[str, Any]]:
    """Every user profile, ordered by email."""
    try:
        users = [_profile(doc) for doc in _users().stream()]
    except google_exceptions.GoogleAPIError as exc:
        logger.error("Listing users failed: %s", exc)
        raise UpstreamFetchError("firestore", "No se pudieron cargar los usuarios.") from exc
    return sorted(users, key=lambda u: str(u.get("email") or "").lower())

def filter_users(
    users: Iterable[Mapping[str, Any]],
    role: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Mapping[str, Any]]:
    needle = (search or "").strip().lower()
    kept = []
    for user in users:
        if needle and needle not in str(user.get("email") or "").lower():
            continue
        if role and user.get("role") != role:
            continue
        kept.append(user)
    return kept

def user_summary(users: List[Mapping[str, Any]]) -> Dict[str, int]:
    return {
        "total": len(users),
        "admins": sum(1 for u in users if u.get("role") == ADMIN_ROLE),
        "usuarios": sum(1 for u in users if u.get("role") == DEFAULT_ROLE),
    }

def role_options(users: Iterable[Mapping[str, Any]]) -> List[str]:
    options = list(ROLES)
    for user in users:
        if user.get("role") and user["role"] not in options:
            options.append(user["role"])
    return options

def create_managed_user(name: str, email: str, password: str, role: str = DEFAULT_ROLE) -> Dict[str, Any]:
    """Create the Auth identity, its role claim and the profile document.

    Auth errors (``EmailAlreadyExistsError``, ``ValueError`` for a weak
    password or bad email) propagate to the caller.
    """
    app = get_firebase_app()
    record = auth.create_user(email=email, password=password, display_name=name, app=app)
    auth.set_custom_user_claims(record.uid, {"role": role}, app=app)
    profile = {"name": name, "email": email, "role": role}
    try:
        _users().document(record.uid).set({**profile, "createdAt": firestore.SERVER_TIMESTAMP})
    except google_exceptions.GoogleAPIError as exc:
        logger.error("Profile for %s not saved, removing auth user %s: %s", email, record.uid, exc)
        auth.delete_user(record.uid, app=app)
        raise UpstreamFetchError("firestore", "No se pudo guardar el usuario.") from exc
    logger.info("Created user %s (%s) with role %s", record.uid, email, role)
    return {"id": record.uid, **profile}

def update_user_role(uid: str, role: str) -> Dict[str, Any]:
    auth.set_custom_user_claims(uid, {"role": role}, app=get_firebase_app())
    try:
        _users().document(uid).set({"role": role, "updatedAt": firestore.SERVER_TIMESTAMP}, merge=True)
    except google_exceptions.GoogleAPIError as exc:
        logger.error("Role update for %s failed: %s", uid, exc)
        raise UpstreamFetchError("firestore", "No se pudo actualizar el rol.") from exc
    logger.info("User %s is now %s", uid, role)
    return {"id": uid, "role": role}

def delete_user_record(uid: str) -> None:
    try:
        auth.delete_user(uid, app=get_firebase_app())
    except auth.UserNotFoundError:
        logger.warning("User %s has no auth identity, removing profile only", uid)
    try:
        _users().document(uid).delete()
    except google_exceptions.GoogleAPIError as exc:
        logger.error("Profile delete for %s failed: %s", uid, exc)
        raise UpstreamFetchError("firestore", "No se pudo eliminar el usuario.") from exc
    logger.info("Deleted user %s", uid)

def get_user_role(user: Mapping[str, Any]) -> str:
    """Role from the token's custom claim, else from the profile document."""
    if user.get("role"):
        return user["role"]
    try:
        doc = _users().document(user["uid"]).get()
    except google_exceptions.GoogleAPIError as exc:
        logger.error("Role lookup for %s failed: %s", user.get("uid"), exc)
        raise UpstreamFetchError("firestore", "No se pudo verificar el rol.") from exc
    if not doc.exists:
        return DEFAULT_ROLE
    return (doc.to_dict() or {}).get("role") or DEFAULT_ROLE
