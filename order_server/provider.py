"""
OIDC provider client: discovery, authorization URL, code exchange, userinfo,
ID token and Bearer access token checks.
Any OIDC-compliant discovery document works; only the issuer and client settings are configured.
"""
import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx
import jwt
from jwt import PyJWKClient
from jwt.exceptions import PyJWKClientError

from order_server.config import DEFAULT_PROVIDER_TIMEOUT, ConfigError, OAuthSettings
from order_server.errors import AuthError, BearerTokenError, ProviderHttpError
from order_server.pkce import build_authorize_url

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"

# Only asymmetric algorithms can be checked against the provider's JWKS
_JWKS_ALG_PREFIXES = ("RS", "PS", "ES", "EdDSA")


@dataclass(frozen=True)
class ProviderMetadata:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str | None = None
    jwks_uri: str | None = None
    id_token_algorithms: tuple[str, ...] = ("RS256",)

    @classmethod
    def from_document(cls, doc) -> "ProviderMetadata":
        if not isinstance(doc, dict):
            raise ConfigError("oidc discovery failed: document is not a JSON object")
        missing = [k for k in ("issuer", "authorization_endpoint", "token_endpoint") if not doc.get(k)]
        if missing:
            raise ConfigError(f"oidc discovery failed: missing {', '.join(missing)}")
        algs = tuple(
            a
            for a in doc.get("id_token_signing_alg_values_supported") or ()
            if isinstance(a, str) and a.startswith(_JWKS_ALG_PREFIXES)
        )
        return cls(
            issuer=doc["issuer"],
            authorization_endpoint=doc["authorization_endpoint"],
            token_endpoint=doc["token_endpoint"],
            userinfo_endpoint=doc.get("userinfo_endpoint") or None,
            jwks_uri=doc.get("jwks_uri") or None,
            id_token_algorithms=algs or ("RS256",),
        )


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    token_type: str
    expires_in: int | None = None
    id_token: str | None = None
    scope: str = ""

    @classmethod
    def from_payload(cls, payload) -> "TokenResponse":
        if not isinstance(payload, dict):
            raise AuthError("token response is not a JSON object")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise AuthError("token response missing access_token")
        expires_in = payload.get("expires_in")
        id_token = payload.get("id_token")
        scope = payload.get("scope")
        return cls(
            access_token=access_token,
            token_type=str(payload.get("token_type") or "Bearer"),
            expires_in=expires_in if isinstance(expires_in, int) and not isinstance(expires_in, bool) else None,
            id_token=id_token if isinstance(id_token, str) and id_token else None,
            scope=scope if isinstance(scope, str) else "",
        )


def _error_description(response: httpx.Response) -> str:
    """Short reason from an OAuth error body, falling back to the status code."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        desc = body.get("error_description") or body.get("error")
        if desc:
            return str(desc)
    return f"status {response.status_code}"


def discover(issuer_url: str, client: httpx.Client) -> ProviderMetadata:
    """Fetch and validate the discovery document. Failures are fatal (ConfigError)."""
    issuer_url = issuer_url.rstrip("/")
    logger.info("Starting OIDC discovery at %s", issuer_url)
    try:
        r = client.get(f"{issuer_url}{DISCOVERY_PATH}", headers={"Accept": "application/json"})
        r.raise_for_status()
        doc = r.json()
    except httpx.HTTPError as e:
        raise ConfigError(f"oidc discovery failed: {e}") from e
    except ValueError as e:
        raise ConfigError("oidc discovery failed: response is not JSON") from e

    metadata = ProviderMetadata.from_document(doc)
    if metadata.issuer.rstrip("/") != issuer_url:
        raise ConfigError(f"oidc discovery failed: issuer mismatch ({metadata.issuer} != {issuer_url})")
    logger.info("Successfully discovered OIDC provider metadata")
    return metadata


class OIDCProvider:
    def __init__(
        self,
        metadata: ProviderMetadata,
        *,
        client_id: str,
        client_secret: str | None,
        redirect_uri: str,
        http_client: httpx.Client | None = None,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
    ) -> None:
        self.metadata = metadata
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._client = http_client or httpx.Client(timeout=timeout)
        self._jwks_client: PyJWKClient | None = None

    @classmethod
    def from_settings(cls, settings: OAuthSettings, http_client: httpx.Client | None = None) -> "OIDCProvider":
        client = http_client or httpx.Client(timeout=settings.timeout)
        try:
            metadata = discover(settings.issuer_url, client)
        except ConfigError:
            if http_client is None:
                client.close()
            raise
        return cls(
            metadata,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_url,
            http_client=client,
        )

    def close(self) -> None:
        self._client.close()

    def authorization_url(self, *, scopes, state: str, code_challenge: str, nonce: str) -> str:
        return build_authorize_url(
            authorization_endpoint=self.metadata.authorization_endpoint,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scopes=scopes,
            state=state,
            code_challenge=code_challenge,
            nonce=nonce,
        )

    def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        """Authorization code + PKCE verifier -> tokens. Any failure is an AuthError."""
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "code_verifier": code_verifier,
        }
        auth = None
        if self.client_secret:
            # client_secret_basic: credentials are form-urlencoded before base64 (RFC 6749 2.3.1)
            auth = httpx.BasicAuth(quote(self.client_id, safe=""), quote(self.client_secret, safe=""))
        else:
            data["client_id"] = self.client_id

        try:
            r = self._client.post(
                self.metadata.token_endpoint,
                data=data,
                auth=auth,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise AuthError(f"token request failed: {e}") from e

        if r.status_code != 200:
            logger.debug("Token endpoint returned %s: %s", r.status_code, r.text[:500])
            raise AuthError(f"code exchange rejected: {_error_description(r)}")
        try:
            payload = r.json()
        except ValueError as e:
            raise AuthError("token response is not JSON") from e
        return TokenResponse.from_payload(payload)

    def fetch_userinfo(self, access_token: str) -> dict:
        """Userinfo claims for the access token. Failures are ProviderHttpError, not AuthError."""
        endpoint = self.metadata.userinfo_endpoint
        if not endpoint:
            raise ProviderHttpError("provider does not expose a userinfo endpoint")
        try:
            r = self._client.get(
                endpoint,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ProviderHttpError(f"userinfo request failed: {e}") from e

        if r.status_code != 200:
            raise ProviderHttpError(f"userinfo endpoint returned {r.status_code}")
        try:
            claims = r.json()
        except ValueError as e:
            raise ProviderHttpError("userinfo response is not JSON") from e
        if not isinstance(claims, dict):
            raise ProviderHttpError("userinfo response is not a JSON object")
        return claims

    def _get_jwks_client(self) -> PyJWKClient:
        if self._jwks_client is None:
            self._jwks_client = PyJWKClient(self.metadata.jwks_uri, cache_jwk_set=True, lifespan=3600)
        return self._jwks_client

    def verify_id_token(self, id_token: str, nonce: str | None) -> dict:
        """
        Verify ID token signature via JWKS and validate iss, aud, exp and nonce.
        Returns decoded claims. Raises AuthError on any failure.
        """
        if not self.metadata.jwks_uri:
            raise AuthError("provider publishes no jwks_uri; cannot verify id_token")
        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(id_token)
            claims = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=list(self.metadata.id_token_algorithms),
                audience=self.client_id,
                issuer=self.metadata.issuer,
                options={"require": ["exp", "iss", "aud", "sub"]},
            )
        except PyJWKClientError as e:
            logger.debug("JWKS lookup failed: %s", e)
            raise AuthError("id_token signing key not found") from e
        except jwt.InvalidTokenError as e:
            logger.debug("ID token verification failed: %s", e)
            raise AuthError(f"invalid id_token: {e}") from e

        if nonce is not None and claims.get("nonce") != nonce:
            raise AuthError("id_token nonce mismatch")
        return claims

    def verify_access_token(self, token: str) -> dict:
        """
        Verify a Bearer access token (JWT) via JWKS; iss must be the issuer, aud the client id.
        Returns decoded claims. Raises BearerTokenError (invalid_token) on any failure.
        """
        if not self.metadata.jwks_uri:
            raise BearerTokenError("invalid_token", "Auth not configured")
        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=list(self.metadata.id_token_algorithms),
                audience=self.client_id,
                issuer=self.metadata.issuer,
                options={"require": ["exp", "iss", "aud", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise BearerTokenError("invalid_token", "Token expired")
        except jwt.InvalidAudienceError:
            raise BearerTokenError("invalid_token", "Invalid audience")
        except jwt.InvalidIssuerError:
            raise BearerTokenError("invalid_token", "Invalid issuer")
        except (PyJWKClientError, jwt.InvalidTokenError) as e:
            logger.warning("Access token verification failed: %s", e)
            raise BearerTokenError("invalid_token", "Token verification failed")
