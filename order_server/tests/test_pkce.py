"""Tests for PKCE and auth URL building."""
import re
from urllib.parse import parse_qs, urlparse

from order_server.pkce import (
    build_authorize_url,
    code_challenge_for,
    generate_nonce,
    generate_pkce,
    generate_state,
)


def test_generate_state_length():
    s = generate_state()
    assert len(s) >= 32
    assert re.match(r"^[A-Za-z0-9_-]+$", s)


def test_generate_state_is_unique():
    assert len({generate_state() for _ in range(50)}) == 50


def test_generate_nonce_length():
    n = generate_nonce()
    assert len(n) >= 32
    assert re.match(r"^[A-Za-z0-9_-]+$", n)


def test_generate_pkce_returns_verifier_and_challenge():
    verifier, challenge = generate_pkce()
    assert 43 <= len(verifier) <= 128
    assert re.match(r"^[A-Za-z0-9_-]+$", verifier)
    assert re.match(r"^[A-Za-z0-9_-]+$", challenge)
    assert len(challenge) == 43  # base64url(SHA256 digest) no padding
    assert challenge == code_challenge_for(verifier)


def test_code_challenge_matches_rfc7636_example():
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert code_challenge_for(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_build_authorize_url_includes_required_params():
    url = build_authorize_url(
        authorization_endpoint="https://idp.example/oauth2/authorize",
        client_id="client1",
        redirect_uri="https://client.example/cb",
        scopes=["openid", "email"],
        state="mystate",
        code_challenge="challenge123",
        nonce="mynonce",
    )
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert url.startswith("https://idp.example/oauth2/authorize?")
    assert query["response_type"] == ["code"]
    assert query["client_id"] == ["client1"]
    assert query["redirect_uri"] == ["https://client.example/cb"]
    assert query["scope"] == ["openid email"]
    assert query["state"] == ["mystate"]
    assert query["code_challenge"] == ["challenge123"]
    assert query["code_challenge_method"] == ["S256"]
    assert query["nonce"] == ["mynonce"]


def test_build_authorize_url_without_nonce():
    url = build_authorize_url(
        authorization_endpoint="https://idp.example/authorize",
        client_id="c",
        redirect_uri="https://c/cb",
        scopes=["openid"],
        state="s",
        code_challenge="ch",
        nonce=None,
    )
    assert "nonce=" not in url


def test_build_authorize_url_keeps_existing_query():
    url = build_authorize_url(
        authorization_endpoint="https://idp.example/authorize?tenant=acme",
        client_id="c",
        redirect_uri="https://c/cb",
        scopes=["openid"],
        state="s",
        code_challenge="ch",
    )
    query = parse_qs(urlparse(url).query)
    assert query["tenant"] == ["acme"]
    assert query["state"] == ["s"]
