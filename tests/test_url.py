"""Tests for waypoint.http.url: URL parsing and percent-decoding."""

import pytest

from waypoint.http.url import ParsedURL, normalize_path, parse_url, remove_dot_segments, url_decode


class TestUrlDecode:
    def test_plain_text_unchanged(self) -> None:
        assert url_decode("/users/42") == "/users/42"

    def test_percent_escapes(self) -> None:
        assert url_decode("a%20b%2Fc") == "a b/c"

    def test_plus_is_space(self) -> None:
        assert url_decode("a+b") == "a b"

    def test_multibyte_utf8(self) -> None:
        assert url_decode("caf%C3%A9") == "café"

    def test_percent_u_escape(self) -> None:
        assert url_decode("%u00e9t%u00E9") == "été"

    def test_percent_u_surrogate_pair(self) -> None:
        assert url_decode("%uD83D%uDE00") == "\U0001f600"

    def test_malformed_escape_is_literal(self) -> None:
        assert url_decode("100%") == "100%"
        assert url_decode("%zz") == "%zz"
        assert url_decode("%u12") == "%u12"

    def test_invalid_utf8_replaced(self) -> None:
        assert url_decode("%FF") == "�"

    def test_mixed(self) -> None:
        assert url_decode("%u0041%42+%") == "AB %"


class TestPathHelpers:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("/a/b/", "/a/b"),
            ("/a//", "/a"),
            ("/", "/"),
            ("", "/"),
        ],
    )
    def test_normalize_path(self, raw: str, expected: str) -> None:
        assert normalize_path(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("/a/./b", "/a/b"),
            ("/a/../b", "/b"),
            ("/a/b/..", "/a/"),
            ("/../a", "/a"),
            ("/plain", "/plain"),
        ],
    )
    def test_remove_dot_segments(self, raw: str, expected: str) -> None:
        assert remove_dot_segments(raw) == expected


class TestParseUrl:
    def test_absolute_uri(self) -> None:
        url = parse_url("http://example.com:8080/users/42?x=1")
        assert url.scheme == "http"
        assert url.host == "example.com"
        assert url.port == 8080
        assert url.base_path == "/users/42"
        assert url.path == "/users/42"
        assert url.query == "?x=1"

    def test_default_port_omitted(self) -> None:
        assert parse_url("http://example.com:80/").port is None
        assert parse_url("https://example.com:443/").port is None
        assert parse_url("https://example.com:80/").port == 80

    def test_trailing_slash_stripped(self) -> None:
        url = parse_url("http://h/users/")
        assert url.base_path == "/users"
        assert url.path == "/users"

    def test_root_stays_root(self) -> None:
        assert parse_url("http://h/").path == "/"
        assert parse_url("http://h").path == "/"

    def test_path_is_decoded_base_path_is_not(self) -> None:
        url = parse_url("http://h/files/a%20b%2Fc")
        assert url.base_path == "/files/a%20b%2Fc"
        assert url.path == "/files/a b/c"

    def test_no_query(self) -> None:
        assert parse_url("http://h/a").query == ""

    def test_origin_form(self) -> None:
        url = parse_url("/a/b/?q")
        assert url.scheme == ""
        assert url.host == ""
        assert url.path == "/a/b"
        assert url.query == "?q"

    def test_str_round_trips_components(self) -> None:
        url = parse_url("http://Example.com:8080/a/?b=1")
        assert str(url) == "http://example.com:8080/a?b=1"

    def test_bad_port(self) -> None:
        with pytest.raises(ValueError):
            parse_url("http://h:notaport/")


class TestFromScope:
    def test_uses_host_header_and_raw_path(self) -> None:
        scope = {
            "type": "http",
            "scheme": "http",
            "path": "/a b",
            "raw_path": b"/a%20b/",
            "query_string": b"x=1",
            "headers": [(b"host", b"example.com:8000")],
            "server": ("127.0.0.1", 9000),
        }
        url = ParsedURL.from_scope(scope)
        assert url.host == "example.com"
        assert url.port == 8000
        assert url.base_path == "/a%20b"
        assert url.path == "/a b"
        assert url.query == "?x=1"

    def test_falls_back_to_server_address(self) -> None:
        scope = {
            "type": "http",
            "path": "/x",
            "headers": [],
            "server": ("testserver", 80),
        }
        url = ParsedURL.from_scope(scope)
        assert url.host == "testserver"
        assert url.port is None
        assert url.path == "/x"

    def test_asterisk_target_is_root(self) -> None:
        scope = {
            "type": "http",
            "path": "*",
            "raw_path": b"*",
            "headers": [(b"host", b"example.com")],
        }
        url = ParsedURL.from_scope(scope)
        assert url.host == "example.com"
        assert url.path == "/"
        assert str(url) == "http://example.com/"

    def test_bad_host_port_raises(self) -> None:
        scope = {"type": "http", "path": "/", "headers": [(b"host", b"example.com:abc")]}
        with pytest.raises(ValueError):
            ParsedURL.from_scope(scope)


class TestDecodingRoundTrip:
    def test_escaped_slash_space_and_plus(self) -> None:
        assert url_decode("%2Fa%20b+c") == "/a b c"

    def test_base_path_normalization(self) -> None:
        assert parse_url("http://host/foo/").base_path == "/foo"
        assert parse_url("http://host").base_path == "/"

    def test_explicit_port(self) -> None:
        assert parse_url("http://host/").port is None
        assert parse_url("http://host:8080/").port == 8080
