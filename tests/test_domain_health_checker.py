"""Unit tests for the HTTPS domain health checker."""
import httpx

from app.services.domain_health import DomainHealthChecker


def _checker(handler, max_redirects=3):
    return DomainHealthChecker(timeout=1.0, max_redirects=max_redirects, transport=httpx.MockTransport(handler))


def test_healthy_domain():
    result = _checker(lambda request: httpx.Response(200, text="ok")).check_health("www.example.com")

    assert result["healthy"] is True
    assert result["ssl_ready"] is True
    assert result["status_code"] == 200
    assert result["final_url"] == "https://www.example.com"
    assert result["error"] is None


def test_follows_redirects():
    def handler(request):
        if request.url.host == "example.com":
            return httpx.Response(301, headers={"Location": "https://www.example.com/"})
        return httpx.Response(200)

    result = _checker(handler).check_health("example.com")

    assert result["healthy"] is True
    assert result["redirect_count"] == 1
    assert result["final_url"] == "https://www.example.com/"


def test_too_many_redirects():
    handler = lambda request: httpx.Response(302, headers={"Location": "/loop"})
    result = _checker(handler, max_redirects=2).check_health("example.com")

    assert result["healthy"] is False
    assert result["error"] == "Too many redirects"


def test_non_200_is_unhealthy():
    result = _checker(lambda request: httpx.Response(503)).check_health("example.com")
    assert result["healthy"] is False
    assert result["ssl_ready"] is True
    assert result["status_code"] == 503


def test_ssl_failure():
    def handler(request):
        raise httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed", request=request)

    result = _checker(handler).check_health("example.com")

    assert result["healthy"] is False
    assert result["ssl_ready"] is False
    assert result["error"].startswith("SSL error")


def test_dns_failure():
    def handler(request):
        raise httpx.ConnectError("Name or service not known", request=request)

    result = _checker(handler).check_health("example.com")
    assert result["error"].startswith("DNS/Socket error")


def test_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    result = _checker(handler).check_health("example.com")
    assert result["healthy"] is False
    assert result["error"].startswith("Request timeout")


def test_tls_failure_after_redirect_is_not_ssl_ready():
    def handler(request):
        if request.url.host == "example.com":
            return httpx.Response(301, headers={"Location": "https://www.example.com/"})
        raise httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed", request=request)

    result = _checker(handler).check_health("example.com")

    assert result["healthy"] is False
    assert result["ssl_ready"] is False
    assert result["error"].startswith("SSL error")


def test_redirect_to_plain_http_is_not_ssl_ready():
    def handler(request):
        if request.url.scheme == "https":
            return httpx.Response(301, headers={"Location": "http://example.com/"})
        return httpx.Response(200)

    result = _checker(handler).check_health("example.com")

    assert result["healthy"] is True
    assert result["ssl_ready"] is False
    assert result["final_url"] == "http://example.com/"
