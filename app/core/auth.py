"""
Keycloak JWT authentication, tenant resolution and the rule-admin role.

Bearer tokens are verified against the realm's JWKS. Signing keys are cached
per realm URL and refetched once when a token names an unknown kid (key
rotation). The tenant comes from the TENANT_CLAIM claim; rule administration
additionally needs ADMIN_ROLE in the token's realm roles.

AUTH_ENABLED=false short-circuits verification with dev claims for
DEV_TENANT_ID that carry the admin role.
"""
from __future__ import annotations

from typing import Optional

import httpx
import structlog
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import Settings, get_settings

logger = structlog.get_logger()
security = HTTPBearer(auto_error=False)

_jwks_by_realm: dict[str, dict] = {}


async def _load_jwks(keycloak_url: str, refresh: bool = False) -> dict:
    if not refresh and keycloak_url in _jwks_by_realm:
        return _jwks_by_realm[keycloak_url]
    async with httpx.AsyncClient() as client:
        resp = await client.get(f"{keycloak_url}/protocol/openid-connect/certs")
        resp.raise_for_status()
    _jwks_by_realm[keycloak_url] = resp.json()
    return _jwks_by_realm[keycloak_url]


def _find_key(jwks: dict, kid: Optional[str]) -> Optional[dict]:
    return next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)


async def _signing_key(keycloak_url: str, kid: Optional[str]) -> dict:
    key = _find_key(await _load_jwks(keycloak_url), kid)
    if key is None:
        key = _find_key(await _load_jwks(keycloak_url, refresh=True), kid)
    if key is None:
        raise HTTPException(status_code=401, detail="Invalid token signing key")
    return key


def _dev_claims(settings: Settings) -> dict:
    return {
        "sub": "dev-user",
        "roles": [settings.admin_role],
        settings.tenant_claim: settings.dev_tenant_id,
    }


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    settings: Settings = Depends(get_settings),
) -> dict:
    """FastAPI dependency: the verified token claims."""
    if not settings.auth_enabled:
        return _dev_claims(settings)

    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    token = credentials.credentials
    try:
        key = await _signing_key(settings.keycloak_url, jwt.get_unverified_header(token).get("kid"))
        return jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=settings.keycloak_audience,
            issuer=settings.keycloak_url,
        )
    except JWTError as e:
        logger.warning("jwt_validation_failed", error=str(e))
        raise HTTPException(status_code=401, detail=f"Token validation failed: {e}")


def token_roles(claims: dict) -> set[str]:
    """Flat roles (dev claims) plus Keycloak realm roles."""
    roles = set(claims.get("roles") or [])
    roles.update((claims.get("realm_access") or {}).get("roles") or [])
    return roles


async def get_tenant_id(
    claims: dict = Depends(verify_token),
    settings: Settings = Depends(get_settings),
) -> str:
    """FastAPI dependency: the tenant every read and write is scoped to."""
    tenant_id = claims.get(settings.tenant_claim)
    if not tenant_id:
        logger.warning("tenant_claim_missing", sub=claims.get("sub"), claim=settings.tenant_claim)
        raise HTTPException(status_code=401, detail="Token carries no tenant")
    return str(tenant_id)


async def require_rule_admin(
    claims: dict = Depends(verify_token),
    settings: Settings = Depends(get_settings),
) -> dict:
    """FastAPI dependency: claims of a caller allowed to change the rule catalog."""
    if settings.admin_role not in token_roles(claims):
        logger.warning("rule_admin_denied", sub=claims.get("sub"), role=settings.admin_role)
        raise HTTPException(status_code=403, detail=f"Role {settings.admin_role} required")
    return claims
