import json

import pytest

from webquery import Query, for_each, get, post, post_json
from webquery.cancellation import CancellationToken
from webquery.config import HttpConfig
from webquery.errors import HttpStatusError, QueryCancelledError, UnacceptableMediaError
from webquery.options import QuerySetup
from webquery.session import Session
from webquery.types import ErrorTolerance, FetchInfo, HttpHeaders


def test_nothing_is_sent_until_iterated(adapter, session):
    adapter.add("https://x.test/", "ok")
    query = get("https://x.test/").text()

    results = query.share(session)
    assert adapter.requests == []

    assert [fetch.content for fetch in results] == ["ok"]
    assert len(adapter.requests) == 1


def test_chained_stage_runs_after_previous(adapter, session):
    adapter.add("https://x.test/login", "welcome")
    adapter.add("https://x.test/data", "secret")

    fetches = get("https://x.test/login").get("https://x.test/data").text().to_list(session=session)

    assert [fetch.content for fetch in fetches] == ["secret"]
    assert adapter.urls() == ["https://x.test/login", "https://x.test/data"]


def test_filtered_out_stage_skips_its_dependents(adapter, session):
    adapter.add("https://x.test/a", "a", content_type="text/plain")

    query = get("https://x.test/a").filter(lambda info: info.media_type == "text/html").get("https://x.test/b")

    assert query.to_list(session=session) == []
    assert adapter.urls() == ["https://x.test/a"]


def test_chained_stages_inherit_and_extend_setup(adapter, session):
    adapter.add("https://x.test/a", "a")
    adapter.add("https://x.test/b", "b")

    query = (
        get("https://x.test/a")
        .set_header("X-Stage", "first")
        .get("https://x.test/b")
        .add_header("X-Stage", "second")
    )
    query.wait(session)

    first, second = adapter.requests
    assert first.headers["X-Stage"] == "first"
    assert second.headers["X-Stage"] == "first, second"


def test_strict_stage_raises_on_error_status(adapter, session):
    adapter.add("https://x.test/missing", "gone", status=404)

    with pytest.raises(HttpStatusError) as excinfo:
        get("https://x.test/missing").text().to_list(session=session)

    assert excinfo.value.status_code == 404
    assert "404 (Not Found)" in str(excinfo.value)


def test_return_erroneous_fetch_yields_error_responses(adapter, session):
    adapter.add("https://x.test/missing", "gone", status=404)

    fetch = get("https://x.test/missing").return_erroneous_fetch().text().first(session=session)

    assert fetch.status_code == 404
    assert not fetch.is_success
    assert fetch.content == "gone"


def test_except_status_code_tolerates_only_listed_codes(adapter, session):
    adapter.add("https://x.test/missing", status=404)
    adapter.add("https://x.test/broken", status=500)

    info = get("https://x.test/missing").except_status_code(404).first(session=session)
    assert info.status_code == 404

    with pytest.raises(HttpStatusError):
        get("https://x.test/broken").except_status_code(404).wait(session)


def test_accept_rejects_other_media_types(adapter, session):
    adapter.add("https://x.test/api", "{}", content_type="application/json")

    with pytest.raises(UnacceptableMediaError) as excinfo:
        get("https://x.test/api").accept("text/html").text().to_list(session=session)

    message = str(excinfo.value)
    assert "application/json" in message
    assert "text/html" in message


def test_accept_guesses_type_from_disposition_filename(adapter, session):
    adapter.add("https://x.test/file", b"%PDF-", headers={"Content-Disposition": 'attachment; filename="report.pdf"'})

    info = get("https://x.test/file").accept("application/pdf").first(session=session)
    assert info.sniffed_media_type == "application/pdf"

    adapter.add("https://x.test/blob", b"??")
    with pytest.raises(UnacceptableMediaError, match="unspecified type"):
        get("https://x.test/blob").accept("application/pdf").wait(session)


def test_inspectors_see_info_before_content(adapter, session):
    adapter.add("https://x.test/", "body", content_type="text/plain; charset=utf-8")
    seen = []

    query = get("https://x.test/").do(lambda info: seen.append((info.status_code, info.media_type)))
    fetch = query.text().first(session=session)

    assert seen == [(200, "text/plain")]
    assert fetch.content == "body"


def test_request_headers_win_over_config(adapter, session):
    adapter.add("https://x.test/", "ok")

    (
        get("https://x.test/", headers={"User-Agent": "request-agent", "Accept": "text/plain"})
        .with_user_agent("config-agent")
        .set_header("Accept", "application/json")
        .set_header("X-Extra", "1")
        .wait(session)
    )

    sent = adapter.requests[0].headers
    assert sent["User-Agent"] == "request-agent"
    assert sent["Accept"] == "text/plain"
    assert sent["X-Extra"] == "1"


def test_session_config_applies_to_every_stage(adapter):
    adapter.add("https://x.test/", "ok")
    config = HttpConfig().with_user_agent("session-agent")

    with Session(config, adapter=adapter) as owned:
        get("https://x.test/").wait(owned)

    assert adapter.requests[0].headers["User-Agent"] == "session-agent"


def test_post_form_and_json(adapter, session):
    adapter.add("https://x.test/form", "ok", method="POST")
    adapter.add("https://x.test/api", '{"ok": true}', method="POST", content_type="application/json")

    post("https://x.test/form", {"q": "web query", "tag": ["a", "b"], "skip": None}).wait(session)
    fetch = post_json("https://x.test/api", {"n": 1}).json().first(session=session)

    form_request, json_request = adapter.requests
    assert form_request.body == "q=web+query&tag=a&tag=b"
    assert form_request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert json.loads(json_request.body) == {"n": 1}
    assert json_request.headers["Content-Type"].startswith("application/json")
    assert fetch.content == {"ok": True}


def test_for_each_preserves_source_order(adapter, session):
    for name in ("c", "a", "b"):
        adapter.add(f"https://x.test/{name}", name)

    query = for_each(["c", "a", "b"], lambda name: get(f"https://x.test/{name}").text())

    assert [fetch.content for fetch in query.to_list(session=session)] == ["c", "a", "b"]


def test_zero_stage_pipeline_yields_nothing(adapter, session):
    assert Query.empty().to_list(session=session) == []
    assert for_each([], lambda item: get(item)).to_list(session=session) == []
    assert adapter.requests == []


def test_query_can_be_shared_again_with_fresh_sessions(adapter):
    adapter.add("https://x.test/", "ok")
    query = get("https://x.test/").text()

    with Session(adapter=adapter) as first, Session(adapter=adapter) as second:
        one = query.first(session=first)
        two = query.first(session=second)

    assert one.content == two.content == "ok"
    assert one.id == two.id == 1


def test_combinators(adapter, session):
    adapter.add("https://x.test/", "one\ntwo\nthree\n")

    query = get("https://x.test/").lines().map(lambda fetch: fetch.content.upper()).filter(lambda line: line != "TWO")

    assert query.to_list(session=session) == ["ONE", "THREE"]
    assert query.take(1).to_list(session=session) == ["ONE"]
    assert Query.of(1, 2).flat_map(lambda n: Query.of(n, n * 10)).to_list(session=session) == [1, 10, 2, 20]


def test_cancellation_between_stages(adapter, session):
    for name in ("a", "b", "c"):
        adapter.add(f"https://x.test/{name}", name)
    token = CancellationToken()

    query = for_each(["a", "b", "c"], lambda name: get(f"https://x.test/{name}").do(lambda info: token.cancel()))

    with pytest.raises(QueryCancelledError):
        query.wait(session, token)
    assert adapter.urls() == ["https://x.test/a"]


def test_setup_composition_order():
    setup = (
        QuerySetup()
        .with_configurer(lambda config: config.with_user_agent("first"))
        .with_configurer(lambda config: config.with_user_agent(config.user_agent + "+second"))
        .with_predicate(lambda info: info.status_code < 500)
        .with_predicate(lambda info: info.status_code != 204)
        .with_tolerance(ErrorTolerance.RETURN_ERRONEOUS)
    )

    assert setup.configure(HttpConfig()).user_agent == "first+second"
    assert setup.tolerance is ErrorTolerance.RETURN_ERRONEOUS
    assert setup.with_tolerance(ErrorTolerance.STRICT).tolerance is ErrorTolerance.STRICT

    def info(status_code):
        return FetchInfo(1, "1.1", status_code, "", HttpHeaders(), HttpHeaders(), "https://x.test/", "https://x.test/")

    assert setup.accepts(info(200))
    assert not setup.accepts(info(204))
    assert not setup.accepts(info(503))


def test_chained_filters_only_narrow(adapter, session):
    adapter.add("https://x.test/page", "plain", content_type="text/plain")
    adapter.add_html("https://x.test/doc", "<p>doc</p>")

    def html_ok(url):
        return get(url).filter(lambda info: info.status_code == 200).filter(lambda info: info.media_type == "text/html")

    assert html_ok("https://x.test/page").to_list(session=session) == []
    assert [info.url for info in html_ok("https://x.test/doc").to_list(session=session)] == ["https://x.test/doc"]


def test_filtered_out_fetch_still_consumes_its_id(adapter, session):
    adapter.add("https://x.test/a", "a")
    adapter.add("https://x.test/b", "b")

    assert get("https://x.test/a").filter(lambda info: False).to_list(session=session) == []

    assert get("https://x.test/b").first(session=session).id == 2


def test_run_owns_its_session(monkeypatch, adapter):
    adapter.add("https://x.test/", "ok")
    opened = []

    class RecordingSession(Session):
        def __init__(self, config=None):
            super().__init__(config, adapter=adapter)
            opened.append(self)

    monkeypatch.setattr("webquery.query.Session", RecordingSession)

    assert [fetch.content for fetch in get("https://x.test/").text().run()] == ["ok"]
    assert len(opened) == 1 and opened[0].closed
