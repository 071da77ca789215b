"""Identity provider wrapper: Firebase Authentication over its REST API.

Sessions are stateless. The client keeps the ID token returned at sign-in
and sends it as ``Authorization: Bearer <token>``; every request verifies
the token signature against Google's secure-token JWKS.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Tuple

import jwt
import requests

from iklankilat.services.repository import Repository, get_repository
from iklankilat.shared.logging_utils import info as log_info, warning as log_warning
from iklankilat.specs.common.errors import (
    AuthenticationError,
    ConfigurationError,
    IdentityProviderError,
)
from iklankilat.specs.models.domain import DEFAULT_AVATAR_URL, AppUser, UserProfile
from iklankilat.specs.models.http import AuthSessionResponse


IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{method}"
SECURETOKEN_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)
REQUEST_TIMEOUT_SECONDS = 15

# Identity Toolkit error codes that are the caller's fault, mapped to HTTP status.
_CLIENT_ERRORS = {
    "EMAIL_EXISTS": 409,
    "EMAIL_NOT_FOUND": 401,
    "INVALID_PASSWORD": 401,
    "INVALID_LOGIN_CREDENTIALS": 401,
    "USER_DISABLED": 403,
    "INVALID_EMAIL": 400,
    "MISSING_PASSWORD": 400,
    "INVALID_IDP_RESPONSE": 401,
}


@dataclass
class TokenClaims:
    uid: str
    email: Optional[str]
    name: Optional[str]
    picture: Optional[str]


@lru_cache(maxsize=1)
def _jwks_client() -> jwt.PyJWKClient:
    return jwt.PyJWKClient(SECURETOKEN_JWKS_URL)


def bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer`` header, if present."""
    header = headers.get("Authorization") or headers.get("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid authorization header format")
    return token.strip()


def to_app_user(profile: Optional[UserProfile], claims: TokenClaims) -> AppUser:
    display_name = (profile.displayName if profile else None) or claims.name or "User"
    return AppUser(
        uid=claims.uid,
        email=(profile.email if profile else None) or claims.email,
        displayName=display_name,
        avatarUrl=claims.picture or DEFAULT_AVATAR_URL,
        isInstagramConnected=bool(profile and profile.isInstagramConnected),
        instagramHandle=profile.instagramHandle if profile else None,
    )


class AuthService:
    def __init__(
        self,
        repository: Optional[Repository] = None,
        api_key: Optional[str] = None,
        project_id: Optional[str] = None,
        jwks_client: Optional[jwt.PyJWKClient] = None,
    ):
        self.api_key = api_key or os.getenv("FIREBASE_API_KEY")
        self.project_id = project_id or os.getenv("FIREBASE_PROJECT_ID")
        if not self.project_id:
            raise ConfigurationError("FIREBASE_PROJECT_ID environment variable not set")
        self._repository = repository
        self._jwks_client = jwks_client

    @property
    def repository(self) -> Repository:
        if self._repository is None:
            self._repository = get_repository()
        return self._repository

    # ---- identity toolkit ------------------------------------------------

    def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError("FIREBASE_API_KEY environment variable not set")
        try:
            resp = requests.post(
                IDENTITY_TOOLKIT_URL.format(method=method),
                params={"key": self.api_key},
                json=payload,
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise IdentityProviderError(f"Identity provider unreachable: {exc}")
        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}
        if resp.ok:
            return body
        message = ((body.get("error") or {}).get("message") or "UNKNOWN").split(" ")[0]
        log_warning(None, "auth:provider_error", method=method, providerCode=message)
        raise IdentityProviderError(
            message.replace("_", " ").capitalize(),
            details={"providerCode": message},
            status_code=_CLIENT_ERRORS.get(message, 502),
        )

    def _session(self, body: Dict[str, Any], profile: UserProfile) -> AuthSessionResponse:
        claims = TokenClaims(
            uid=body["localId"],
            email=body.get("email"),
            name=body.get("displayName"),
            picture=body.get("photoUrl"),
        )
        expires = body.get("expiresIn")
        return AuthSessionResponse(
            idToken=body["idToken"],
            refreshToken=body.get("refreshToken"),
            expiresIn=int(expires) if expires else None,
            user=to_app_user(profile, claims),
        )

    def register_user(self, email: str, password: str, display_name: str) -> AuthSessionResponse:
        body = self._call(
            "signUp",
            {"email": email, "password": password, "displayName": display_name, "returnSecureToken": True},
        )
        profile = self.repository.create_user_profile(body["localId"], email, display_name)
        log_info(body["localId"], "auth:registered")
        return self._session(body, profile)

    def login_user(self, email: str, password: str) -> AuthSessionResponse:
        body = self._call("signInWithPassword", {"email": email, "password": password, "returnSecureToken": True})
        profile = self.repository.get_user_profile(body["localId"])
        log_info(body["localId"], "auth:logged_in")
        return self._session(body, profile)

    def sign_in_with_google(self, google_id_token: str) -> AuthSessionResponse:
        body = self._call(
            "signInWithIdp",
            {
                "postBody": f"id_token={google_id_token}&providerId=google.com",
                "requestUri": "http://localhost",
                "returnIdpCredential": True,
                "returnSecureToken": True,
            },
        )
        profile = self.repository.ensure_user_profile(
            body["localId"], body.get("email", ""), body.get("displayName")
        )
        log_info(body["localId"], "auth:google_sign_in", newUser=bool(body.get("isNewUser")))
        return self._session(body, profile)

    # ---- token verification ----------------------------------------------

    def verify_id_token(self, token: str) -> TokenClaims:
        jwks = self._jwks_client or _jwks_client()
        try:
            signing_key = jwks.get_signing_key_from_jwt(token)
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=f"https://securetoken.google.com/{self.project_id}",
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.PyJWTError as exc:
            raise AuthenticationError(f"Invalid or expired token: {exc}")
        if not payload.get("sub"):
            raise AuthenticationError("Token has no subject")
        return TokenClaims(
            uid=payload["sub"],
            email=payload.get("email"),
            name=payload.get("name"),
            picture=payload.get("picture"),
        )

    def authenticate(self, headers: Mapping[str, str]) -> Optional[Tuple[TokenClaims, AppUser]]:
        """Resolve the caller; returns None when no bearer token was sent."""
        token = bearer_token(headers)
        if token is None:
            return None
        claims = self.verify_id_token(token)
        return claims, to_app_user(self.repository.get_user_profile(claims.uid), claims)

    def require_user(self, headers: Mapping[str, str]) -> AppUser:
        resolved = self.authenticate(headers)
        if resolved is None:
            raise AuthenticationError()
        return resolved[1]


@lru_cache(maxsize=1)
def get_auth_service() -> AuthService:
    return AuthService()
