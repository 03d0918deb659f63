from webquery.types import (
    HttpHeaders,
    filename_from_disposition,
    http_version_label,
    is_content_header,
    parse_header_params,
)
from webquery.url import canonical_url, host_from_url, resolve_url, same_host, with_query


def test_headers_are_case_insensitive_and_ordered():
    headers = HttpHeaders.of([("Accept", "a"), ("X-One", "1"), ("accept", "b")])

    assert headers.get_all("ACCEPT") == ["a", "b"]
    assert headers.names() == ["Accept", "X-One"]
    assert "x-one" in headers
    assert headers.set("Accept", "c").items == (("Accept", "c"), ("X-One", "1"))
    assert headers.remove("x-one").to_dict() == {"Accept": ["a", "b"]}
    assert len(headers.add("X-Two", "2")) == 4


def test_content_type_params():
    assert parse_header_params('Text/HTML; Charset="UTF-8"; q') == ("text/html", {"charset": "UTF-8"})
    assert parse_header_params(None) == (None, {})


def test_disposition_prefers_extended_filename():
    value = "attachment; filename=\"fallback.txt\"; filename*=UTF-8''r%C3%A9sum%C3%A9.pdf"

    assert filename_from_disposition(value) == "résumé.pdf"
    assert filename_from_disposition('inline; filename="plain.txt"') == "plain.txt"
    assert filename_from_disposition("inline") is None


def test_content_header_split():
    assert is_content_header("Content-Type")
    assert is_content_header("Last-Modified")
    assert not is_content_header("Server")


def test_http_version_label():
    assert http_version_label(11) == "1.1"
    assert http_version_label(20) == "2.0"
    assert http_version_label(None) == "1.1"


def test_url_helpers():
    assert host_from_url("https://Docs.X.test:8443/a") == "docs.x.test"
    assert same_host("https://x.test/a", "http://x.test/b")
    assert not same_host("https://x.test/", "https://www.x.test/")
    assert resolve_url("https://x.test/a/b", "../c?d=1#e") == "https://x.test/c?d=1"
    assert resolve_url("https://x.test/", "  ") is None
    assert resolve_url("https://x.test/", "ftp://x.test/file") is None
    assert with_query("https://x.test/s?old=1#frag", [("q", "a b")]) == "https://x.test/s?q=a+b"


def test_canonical_url():
    assert canonical_url("HTTPS://X.Test") == "https://x.test/"
    assert canonical_url("https://x.test/A/b?Q=1#frag") == "https://x.test/A/b?Q=1"
    assert canonical_url("http://User:Pw@X.test:8080") == "http://User:Pw@x.test:8080/"
