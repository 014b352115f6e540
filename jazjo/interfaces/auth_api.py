from fastapi import APIRouter, Depends

from jazjo.application.access import AuthContext
from jazjo.core.config import settings
from jazjo.core.errors import NotFoundError
from jazjo.domain.schemas import LoginIn, ProfileUpdateIn
from jazjo.interfaces.dependencies import Services, get_services, require_roles

router = APIRouter()


@router.get("/health")
def health_check():
    return {"ok": True}


@router.get("/config")
def public_config():
    """Browser-safe values only; the anon key is the one meant for clients."""
    return {"supabaseUrl": settings.SUPABASE_URL, "supabaseAnonKey": settings.SUPABASE_ANON_KEY}


@router.post("/auth/login")
def login(payload: LoginIn, services: Services = Depends(get_services)):
    return services.access.login(payload.email, payload.password)


@router.get("/profile")
def read_profile(auth: AuthContext = Depends(require_roles())):
    return {"profile": auth.profile.model_dump(mode="json")}


@router.api_route("/profile", methods=["PUT", "PATCH"])
def update_profile(payload: ProfileUpdateIn, auth: AuthContext = Depends(require_roles()),
                   services: Services = Depends(get_services)):
    patch = {}
    full_name = payload.fullName if payload.fullName is not None else payload.full_name
    if full_name is not None:
        patch["full_name"] = full_name.strip()
    if payload.contact is not None:
        patch["contact"] = payload.contact.strip()
    if payload.address is not None:
        patch["address"] = payload.address.strip()

    profile = services.profiles.update(auth.profile.user_id, patch) if patch else auth.profile
    if profile is None:
        raise NotFoundError("Profile not found.")
    return {"profile": profile.model_dump(mode="json")}


@router.get("/rewards")
def read_rewards(auth: AuthContext = Depends(require_roles()), services: Services = Depends(get_services)):
    return {"rewards": services.panel.customer_rewards(auth.profile.user_id)}
