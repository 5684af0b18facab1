"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 response with status, version, and components fields
  - components report which integrations are configured
  - No session cookies required, none set
"""

from __future__ import annotations


def test_health_returns_200_with_components(web_client):
    """Health endpoint returns 200 with status, version, and components."""
    resp = web_client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "0.1.0"
    assert set(data["components"]) == {"identity", "cms", "revalidate", "preview"}


def test_health_reports_configured_integrations(web_client):
    """conftest sets both webhook secrets and leaves the CMS URL unset."""
    components = web_client.get("/api/health").json()["components"]
    assert components["revalidate"] == "configured"
    assert components["preview"] == "configured"
    assert components["cms"] == "unconfigured"


def test_health_no_auth_required(web_client):
    """Health endpoint is reachable anonymously and does not touch cookies."""
    resp = web_client.get("/api/health", headers={})
    assert resp.status_code == 200
    assert "set-cookie" not in resp.headers


def test_unknown_api_path_returns_json_envelope(web_client):
    resp = web_client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "http_404"
