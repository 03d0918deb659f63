from urllib.parse import parse_qsl, urlsplit

import pytest

from webquery import get, submit
from webquery.errors import ConfigurationError, ElementNotFoundError
from webquery.html import ParsedHtml

LOGIN_PAGE = """
<html>
  <head><title>  Sign in </title></head>
  <body>
    <form id="login" action="/session" method="post">
      <input type="hidden" name="csrf" value="tok-123">
      <input name="user" value="">
      <input type="password" name="pass">
      <input type="checkbox" name="remember" checked>
      <input type="checkbox" name="newsletter" value="yes">
      <input type="text" name="locked" value="x" disabled>
      <input type="submit" name="go" value="Go">
    </form>
    <form id="search" action="/search?old=1">
      <input name="q" value="default">
      <select name="lang">
        <option value="en">English</option>
        <option value="de" selected>Deutsch</option>
      </select>
      <textarea name="note">hi</textarea>
    </form>
  </body>
</html>
"""


def test_form_default_data():
    document = ParsedHtml(LOGIN_PAGE, "https://x.test/login")

    login = document.form("#login")
    assert login.index == 0
    assert login.method == "POST"
    assert login.action == "https://x.test/session"
    assert login.data == (("csrf", "tok-123"), ("user", ""), ("pass", ""), ("remember", "on"))

    search = document.form(1)
    assert search.method == "GET"
    assert search.data == (("q", "default"), ("lang", "de"), ("note", "hi"))
    assert document.title == "Sign in"


def test_submit_posts_form_with_overrides(adapter, session):
    adapter.add_html("https://x.test/login", LOGIN_PAGE)
    adapter.add("https://x.test/session", "welcome ann", method="POST")

    query = get("https://x.test/login").submit("#login", {"user": "ann", "pass": "pw", "remember": None})
    fetch = query.text().first(session=session)

    assert fetch.content == "welcome ann"
    posted = adapter.requests[-1]
    assert posted.method == "POST"
    assert parse_qsl(posted.body, keep_blank_values=True) == [("csrf", "tok-123"), ("user", "ann"), ("pass", "pw")]
    assert posted.headers["Referer"] == "https://x.test/login"


def test_submit_get_form_replaces_action_query(adapter, session):
    document = ParsedHtml(LOGIN_PAGE, "https://x.test/login")
    adapter.add("https://x.test/search?lang=de&note=hi&q=web", "results")

    fetch = submit(document, "#search", {"q": "web"}).text().first(session=session)

    assert fetch.content == "results"
    sent = urlsplit(adapter.requests[-1].url)
    assert sent.path == "/search"
    assert sorted(parse_qsl(sent.query)) == [("lang", "de"), ("note", "hi"), ("q", "web")]


def test_missing_form_raises_element_not_found(adapter, session):
    adapter.add_html("https://x.test/login", LOGIN_PAGE)
    document = ParsedHtml(LOGIN_PAGE, "https://x.test/login")

    with pytest.raises(ElementNotFoundError):
        document.form(5)
    with pytest.raises(ElementNotFoundError):
        get("https://x.test/login").submit("#register").wait(session)
    assert adapter.urls() == ["https://x.test/login"]


UPLOAD_PAGE = """
<form id="upload" action="/upload" method="post" enctype="Multipart/Form-Data">
  <input name="title" value="quarterly">
  <input type="checkbox" name="public" value="yes" checked>
</form>
<form id="plain" action="/plain" method="post" enctype="text/plain">
  <input name="a" value="b">
</form>
"""


def test_multipart_form_is_sent_as_form_data(adapter, session):
    document = ParsedHtml(UPLOAD_PAGE, "https://x.test/new")
    adapter.add("https://x.test/upload", "stored", method="POST")

    assert document.form("#upload").enctype == "multipart/form-data"
    submit(document, "#upload", {"title": "annual"}).wait(session)

    posted = adapter.requests[-1]
    assert posted.headers["Content-Type"].startswith("multipart/form-data; boundary=")
    assert b'name="public"\r\n\r\nyes' in posted.body
    assert b'name="title"\r\n\r\nannual' in posted.body


def test_unsupported_enctype_is_a_configuration_error(adapter, session):
    document = ParsedHtml(UPLOAD_PAGE, "https://x.test/new")

    with pytest.raises(ConfigurationError, match="text/plain"):
        submit(document, "#plain").wait(session)
    assert adapter.requests == []
