"""Tests for doorway.server.errors: negotiated JSON / HTML error responses."""

import json
import logging

import pytest

from doorway.config import ServerConfig
from doorway.errors import MethodNotAllowed, NotFound, Unauthorized
from doorway.server.errors import common_template_vars, home_path, relative_root, render_error
from doorway.templating import create_environment

BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
HTML_ONLY_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9"


@pytest.fixture
def env():
    return create_environment(ServerConfig())


class TestJSON:
    def test_missing_accept_gets_json(self, env, make_request) -> None:
        response = render_error(NotFound(), make_request("/nope"), env=env)

        assert response.status == 404
        assert response.content_type.startswith("application/json")
        assert json.loads(response.text) == {"error": "Not Found"}

    def test_json_preferred(self, env, make_request) -> None:
        request = make_request("/nope", headers={"Accept": "application/json"})
        response = render_error(Unauthorized(), request, env=env)
        assert response.status == 401
        assert json.loads(response.text) == {"error": "Unauthorized"}

    def test_wildcard_accept_gets_json(self, env, make_request) -> None:
        request = make_request("/nope", headers={"Accept": "*/*"})
        response = render_error(NotFound(), request, env=env)
        assert response.content_type.startswith("application/json")

    def test_details_merged(self, env, make_request) -> None:
        class QuotaExceeded(Exception):
            status = 429
            details = {"retryAfter": 30}

        response = render_error(QuotaExceeded("slow down"), make_request("/"), env=env)

        assert response.status == 429
        assert json.loads(response.text) == {"error": "slow down", "retryAfter": 30}

    def test_file_not_found_is_404(self, env, make_request) -> None:
        exc = FileNotFoundError(2, "No such file or directory", "/srv/missing")
        response = render_error(exc, make_request("/missing"), env=env)
        assert response.status == 404

    def test_browser_wildcard_gets_json(self, env, make_request) -> None:
        request = make_request("/nope", headers={"Accept": BROWSER_ACCEPT})
        response = render_error(NotFound(), request, env=env)
        assert response.content_type.startswith("application/json")
        assert json.loads(response.text) == {"error": "Not Found"}

    def test_no_environment_falls_back_to_json(self, make_request) -> None:
        request = make_request("/", headers={"Accept": HTML_ONLY_ACCEPT})
        response = render_error(NotFound(), request, env=None)
        assert response.content_type.startswith("application/json")


class TestHTML:
    def test_html_only_client_gets_error_page(self, env, make_request) -> None:
        request = make_request("/nope", headers={"Accept": HTML_ONLY_ACCEPT})

        response = render_error(NotFound("Nothing here"), request, env=env)

        assert response.status == 404
        assert response.content_type.startswith("text/html")
        assert "<h1 class=\"main\">404</h1>" in response.text
        assert "Nothing here" in response.text
        assert 'href="/"' in response.text

    def test_json_refused_gets_error_page(self, env, make_request) -> None:
        request = make_request("/nope", headers={"Accept": "application/json;q=0, */*"})
        response = render_error(NotFound(), request, env=env)
        assert response.content_type.startswith("text/html")

    def test_message_is_escaped(self, env, make_request) -> None:
        request = make_request("/", headers={"Accept": "text/html"})
        response = render_error(RuntimeError("<script>alert(1)</script>"), request, env=env)
        assert "<script>alert(1)</script>" not in response.text
        assert "&lt;script&gt;" in response.text

    def test_to_query_sets_home_link(self, env, make_request) -> None:
        request = make_request("/x", headers={"Accept": "text/html"}, query_string="to=/workspace")
        response = render_error(Unauthorized(), request, env=env)
        assert 'href="/workspace"' in response.text

    def test_repeated_to_is_ignored(self, env, make_request) -> None:
        request = make_request("/x", headers={"Accept": "text/html"}, query_string="to=/a&to=/b")
        response = render_error(Unauthorized(), request, env=env)
        assert 'href="/"' in response.text

    def test_template_vars_reach_page(self, tmp_path, make_request) -> None:
        (tmp_path / "error").mkdir()
        (tmp_path / "error" / "index.html").write_text(
            "<p>{{ ERROR_HEADER }} {{ PRODUCT }} {{ BASE }}</p>"
        )
        env = create_environment(ServerConfig(template_dir=tmp_path))
        request = make_request("/a/b", headers={"Accept": "text/html"})

        response = render_error(
            NotFound(), request, env=env, template_vars=lambda r: {"PRODUCT": "ide"}
        )

        assert response.text == "<p>404 ide ./..</p>"


class TestHeadersAndFallback:
    def test_allow_header_kept(self, env, make_request) -> None:
        response = render_error(MethodNotAllowed(frozenset({"GET", "POST"})), make_request("/"), env=env)
        assert response.status == 405
        assert response.header("Allow") == "GET, POST"

    def test_rendering_failure_is_plain_500(self, env, make_request, caplog) -> None:
        def broken_vars(request):
            raise RuntimeError("shell unavailable")

        request = make_request("/", headers={"Accept": "text/html"})
        with caplog.at_level(logging.ERROR, logger="doorway.server"):
            response = render_error(NotFound(), request, env=env, template_vars=broken_vars)

        assert response.status == 500
        assert response.text == "Internal Server Error"
        assert response.content_type.startswith("text/plain")
        assert "Failed to render error response" in caplog.text

    def test_server_errors_logged_with_stack(self, env, make_request, caplog) -> None:
        with caplog.at_level(logging.ERROR, logger="doorway.server"):
            render_error(RuntimeError("kaboom"), make_request("/boom"), env=env)
        record = next(r for r in caplog.records if r.name == "doorway.server")
        assert record.exc_info is not None
        assert "500 GET /boom" in record.getMessage()

    def test_client_errors_not_logged_as_errors(self, env, make_request, caplog) -> None:
        with caplog.at_level(logging.ERROR, logger="doorway.server"):
            render_error(NotFound(), make_request("/nope"), env=env)
        assert caplog.records == []

    def test_log_level_follows_error_kind(self, env, make_request, caplog) -> None:
        with caplog.at_level(logging.DEBUG, logger="doorway.server"):
            render_error(Unauthorized(), make_request("/local/"), env=env)
            render_error(NotFound(), make_request("/nope"), env=env)
        levels = [
            (r.levelno, r.getMessage().split(" ")[0])
            for r in caplog.records
            if r.name == "doorway.server"
        ]
        assert levels == [(logging.INFO, "401"), (logging.DEBUG, "404")]


class TestHelpers:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/", "."),
            ("/login", "."),
            ("/a/b", "./../"),
            ("/a/b/", "./../../"),
        ],
    )
    def test_relative_root(self, make_request, path, expected) -> None:
        assert relative_root(make_request(path)) == expected

    def test_common_vars_base(self, make_request) -> None:
        assert common_template_vars(make_request("/a/b")) == {"BASE": "./.."}

    def test_home_path_default(self, make_request) -> None:
        assert home_path(make_request("/")) == "/"
        assert home_path(make_request("/", query_string="to=")) == "/"
