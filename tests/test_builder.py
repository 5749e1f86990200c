"""Tests for RequestBuilder.

Tests cover:
- Verb defaults and state reset between requests
- Encoding resolution end to end (JSON, form, XML, multipart, GET)
- Errors recorded during accumulation short-circuit execution
- build(): headers, Host routing, query merge, auth, cookies, idempotence
- end()/end_struct() against httpx.MockTransport
- Retry through the builder (time.sleep patched)
- clone() isolation and transport sharing
- Debug and curl logging
"""

import json
import logging
from pathlib import Path
from unittest.mock import patch
from urllib.parse import parse_qsl, urlencode

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from pydantic import BaseModel

from reqchain.builder import RequestBuilder
from reqchain.context import RequestContext
from reqchain.errors import (
    EncodingError,
    FileReadError,
    NetworkError,
    ResponseDecodeError,
    ValidationError,
)
from reqchain.models import ClientConfig, Cookie, RetryConfig, TargetEncoding
from reqchain.retry import RETRY_COUNT_HEADER
from tests.conftest import RecordingHandler, json_response, make_builder, make_transport


class Recipe(BaseModel):
    name: str
    servings: int


class TestVerbs:
    """Tests for verb methods and state reset."""

    def test_get_has_no_body(self, builder: RequestBuilder) -> None:
        descriptor = builder.get("http://api.test/items").send('{"a": 1}').build()
        assert descriptor.method == "GET"
        assert descriptor.body is None
        assert descriptor.content_type is None

    def test_post_defaults_to_json(self, builder: RequestBuilder) -> None:
        descriptor = builder.post("http://api.test/items").send('{"a": 1}').build()
        assert descriptor.body == b'{"a":1}'
        assert descriptor.content_type == "application/json"

    @pytest.mark.parametrize("verb", ["put", "patch", "delete", "head", "options"])
    def test_other_verbs(self, builder: RequestBuilder, verb: str) -> None:
        descriptor = getattr(builder, verb)("http://api.test/items").build()
        assert descriptor.method == verb.upper()
        assert builder.target == TargetEncoding.JSON

    def test_custom_method(self, builder: RequestBuilder) -> None:
        descriptor = builder.custom_method("PURGE", "http://api.test/cache").build()
        assert descriptor.method == "PURGE"

    def test_custom_method_known_verb_gets_defaults(self, builder: RequestBuilder) -> None:
        builder.custom_method("GET", "http://api.test/items")
        assert builder.target == TargetEncoding.UNSET

    def test_new_verb_clears_state(self, builder: RequestBuilder) -> None:
        builder.post("http://api.test/a").send('{"a": 1}').set("X-Trace", "1").query("q=1")
        descriptor = builder.post("http://api.test/b").build()
        assert descriptor.body is None
        assert descriptor.header("X-Trace") is None
        assert descriptor.url == "http://api.test/b"

    def test_keep_state_survives_new_verb(self, builder: RequestBuilder) -> None:
        builder.set_keep_state(True)
        builder.post("http://api.test/a").send('{"a": 1}')
        descriptor = builder.put("http://api.test/b").build()
        assert descriptor.body == b'{"a":1}'

    def test_missing_method(self, builder: RequestBuilder) -> None:
        with pytest.raises(ValidationError, match="no method"):
            builder.build()


class TestEncodingEndToEnd:
    """Tests for resolution and encoding through the builder."""

    def test_query_string_payload_switches_to_form(self, builder: RequestBuilder) -> None:
        descriptor = builder.post("http://api.test/").send("name=egg&tag=a").send("tag=b").build()
        assert descriptor.content_type == "application/x-www-form-urlencoded"
        assert descriptor.body == b"name=egg&tag=a&tag=b"

    def test_json_and_form_payloads_merge(self, builder: RequestBuilder) -> None:
        descriptor = (
            builder.post("http://api.test/")
            .type("json")
            .send('{"name": "egg benedict"}')
            .send("category=brunch")
            .build()
        )
        assert json.loads(descriptor.body) == {"name": "egg benedict", "category": "brunch"}

    def test_forced_xml(self, builder: RequestBuilder) -> None:
        descriptor = builder.post("http://api.test/").type("xml").send("<a/>").build()
        assert descriptor.body == b"<a/>"
        assert descriptor.content_type == "application/xml"

    def test_content_type_header_selects_encoding(self, builder: RequestBuilder) -> None:
        descriptor = (
            builder.post("http://api.test/")
            .set("Content-Type", "application/x-www-form-urlencoded")
            .send('{"b": "2", "a": "1"}')
            .build()
        )
        assert descriptor.body == b"a=1&b=2"
        # The caller's header is kept and not duplicated
        assert [v for k, v in descriptor.headers if k.lower() == "content-type"] == [
            "application/x-www-form-urlencoded"
        ]

    def test_mixed_map_and_array_fall_back_to_raw(self, builder: RequestBuilder) -> None:
        descriptor = builder.post("http://api.test/").send('{"a": 1}').send("[1,2]").build()
        assert descriptor.body == b'{"a": 1}[1,2]'

    def test_empty_object_sends_raw(self, builder: RequestBuilder) -> None:
        descriptor = builder.post("http://api.test/").send("{}").build()
        assert descriptor.body == b"{}"

    def test_no_data_no_body(self, builder: RequestBuilder) -> None:
        descriptor = builder.post("http://api.test/").build()
        assert descriptor.body is None
        assert descriptor.header("Content-Type") is None

    def test_record_payload(self, builder: RequestBuilder) -> None:
        descriptor = builder.post("http://api.test/").send(Recipe(name="egg", servings=2)).build()
        assert descriptor.body == b'{"name":"egg","servings":2}'

    def test_html_cannot_be_encoded(self, builder: RequestBuilder) -> None:
        with pytest.raises(EncodingError):
            builder.post("http://api.test/").type("html").send("<p/>").build()

    def test_multipart_files_are_numbered(self, builder: RequestBuilder, tmp_path: Path) -> None:
        path = tmp_path / "a.txt"
        path.write_bytes(b"A")
        builder.post("http://api.test/upload").type("multipart")
        builder.send_file(str(path)).send_file(b"B").send_file(b"C", filename="c.bin")
        assert [f.field_name for f in builder.files] == ["file1", "file2", "file3"]
        assert [f.filename for f in builder.files] == ["a.txt", "filename", "c.bin"]

        descriptor = builder.build()
        assert descriptor.content_type is not None
        assert descriptor.content_type.startswith("multipart/form-data; boundary=")
        assert b'name="file3"; filename="c.bin"' in descriptor.body


class TestFormRoundTrip:
    """Property: a form payload survives accumulation and form encoding."""

    @given(
        st.lists(
            st.tuples(
                st.text(alphabet=st.characters(blacklist_categories=("Cs",)), min_size=1, max_size=6),
                st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=6),
            ),
            min_size=1,
            max_size=6,
        )
    )
    @settings(max_examples=50, deadline=None)
    def test_form_round_trip(self, pairs: list[tuple[str, str]]) -> None:
        builder = make_builder()
        descriptor = builder.post("http://api.test/").send(urlencode(pairs)).build()
        assert descriptor.content_type == "application/x-www-form-urlencoded"
        decoded = parse_qsl(descriptor.body.decode("ascii"), keep_blank_values=True)
        assert decoded == sorted(pairs, key=lambda pair: pair[0])


class TestAccumulationErrors:
    """Faults are recorded and never break the chain."""

    def test_unknown_type(self, builder: RequestBuilder) -> None:
        builder.post("http://api.test/").type("yaml")
        assert len(builder.errors) == 1
        assert isinstance(builder.errors[0], ValidationError)

    def test_unknown_retry_status(self, builder: RequestBuilder) -> None:
        builder.post("http://api.test/").retry(1, 0, 500, 999)
        assert len(builder.errors) == 1
        assert "999" in str(builder.errors[0])

    def test_missing_file(self, builder: RequestBuilder, tmp_path: Path) -> None:
        returned = builder.post("http://api.test/").send_file(tmp_path / "missing")
        assert returned is builder
        assert isinstance(builder.errors[0], FileReadError)
        assert builder.files == []

    def test_empty_mime_type(self, builder: RequestBuilder) -> None:
        builder.post("http://api.test/").send_file(b"x", mime_type="")
        assert isinstance(builder.errors[0], ValidationError)

    def test_errors_short_circuit_execution(self, recorder: RecordingHandler, builder: RequestBuilder) -> None:
        outcome = builder.post("http://api.test/").type("yaml").end()
        assert outcome.response is None
        assert len(outcome.errors) == 1
        assert recorder.requests == []

    def test_build_raises_first_error(self, builder: RequestBuilder) -> None:
        builder.post("http://api.test/").type("yaml").type("toml")
        with pytest.raises(ValidationError, match="yaml"):
            builder.build()

    def test_new_verb_clears_errors(self, builder: RequestBuilder) -> None:
        builder.set_keep_state(True)
        builder.post("http://api.test/").type("yaml")
        builder.post("http://api.test/")
        assert builder.errors == []


class TestBuildDescriptor:
    """Tests for build() assembly."""

    def test_idempotent(self, builder: RequestBuilder) -> None:
        builder.post("http://api.test/items?x=1").send('{"a": 1}').send("b=2").query("q=1")
        first = builder.build()
        second = builder.build()
        assert (first.method, first.url, first.content_type, first.body) == (
            second.method,
            second.url,
            second.content_type,
            second.body,
        )

    def test_host_header_routes(self, builder: RequestBuilder) -> None:
        descriptor = builder.get("http://10.0.0.1/").set("Host", "api.example.com").build()
        assert descriptor.host == "api.example.com"
        assert descriptor.header("Host") is None

    def test_query_merge_appends(self, builder: RequestBuilder) -> None:
        descriptor = (
            builder.get("http://api.test/search?q=egg")
            .query("q=ham")
            .query({"page": 2})
            .param("raw", "a;b")
            .build()
        )
        url = httpx.URL(descriptor.url)
        assert url.params.get_list("q") == ["egg", "ham"]
        assert url.params["page"] == "2"
        assert url.params["raw"] == "a;b"

    def test_set_replaces_and_append_keeps(self, builder: RequestBuilder) -> None:
        descriptor = (
            builder.get("http://api.test/")
            .append_header("X-Tag", "a")
            .append_header("x-tag", "b")
            .set("X-Mode", "1")
            .set("x-mode", "2")
            .build()
        )
        assert [v for k, v in descriptor.headers if k.lower() == "x-tag"] == ["a", "b"]
        assert [v for k, v in descriptor.headers if k.lower() == "x-mode"] == ["2"]

    def test_set_headers_from_mapping(self, builder: RequestBuilder) -> None:
        descriptor = builder.get("http://api.test/").set_headers({"X-Count": 2}).build()
        assert descriptor.header("x-count") == "2"

    def test_basic_auth_only_when_set(self, builder: RequestBuilder) -> None:
        assert builder.get("http://api.test/").build().basic_auth is None
        descriptor = builder.get("http://api.test/").set_basic_auth("user", "").build()
        assert descriptor.basic_auth == ("user", "")

    def test_cookies_and_context(self, builder: RequestBuilder) -> None:
        ctx = RequestContext(timeout=2.0)
        descriptor = (
            builder.get("http://api.test/")
            .add_cookie(Cookie(name="a", value="1"))
            .add_cookies([Cookie(name="b", value="2")])
            .context(ctx)
            .build()
        )
        assert [c.name for c in descriptor.cookies] == ["a", "b"]
        assert descriptor.context is ctx

    def test_config_headers_and_user_agent(self) -> None:
        config = ClientConfig(headers={"X-Api-Key": "k"}, user_agent="reqchain-test")
        descriptor = make_builder(config=config).get("http://api.test/").build()
        assert descriptor.header("X-Api-Key") == "k"
        assert descriptor.header("User-Agent") == "reqchain-test"

    def test_invalid_url(self, builder: RequestBuilder) -> None:
        with pytest.raises(ValidationError, match="invalid url"):
            builder.get("http://api.test:notaport/").build()

    def test_as_curl_command(self, builder: RequestBuilder) -> None:
        command = builder.post("http://api.test/items").send('{"a": 1}').as_curl_command()
        assert command.startswith("curl -X POST")
        assert "-d '{\"a\":1}'" in command
        assert command.endswith("http://api.test/items")


class TestEnd:
    """Tests for executing requests."""

    def test_end_returns_body(self) -> None:
        recorder = RecordingHandler([httpx.Response(201, text="created")])
        outcome = make_builder(recorder).post("http://api.test/items").send('{"a": 1}').end()
        assert outcome.ok
        assert outcome.response is not None
        assert outcome.response.status_code == 201
        assert outcome.body == b"created"
        assert outcome.text == "created"
        assert recorder.last.content == b'{"a":1}'
        assert recorder.last.headers["content-type"] == "application/json"

    def test_wire_headers(self) -> None:
        recorder = RecordingHandler()
        (
            make_builder(recorder)
            .get("http://api.test/")
            .set_basic_auth("user", "pass")
            .add_cookie(Cookie(name="session", value="abc"))
            .end()
        )
        assert recorder.last.headers["authorization"] == "Basic dXNlcjpwYXNz"
        assert recorder.last.headers["cookie"] == "session=abc"

    def test_callback_receives_outcome(self, builder: RequestBuilder) -> None:
        seen = []
        outcome = builder.get("http://api.test/").end(seen.append)
        assert seen == [outcome]

    def test_stats_recorded(self) -> None:
        recorder = RecordingHandler([httpx.Response(200, content=b"12345")])
        builder = make_builder(recorder)
        builder.post("http://api.test/").send('{"a": 1}').end()
        assert builder.stats.request_bytes == len(b'{"a":1}')
        assert builder.stats.response_bytes == 5
        assert builder.stats.request_duration >= 0

    def test_network_error_is_returned(self) -> None:
        recorder = RecordingHandler([httpx.ConnectError("refused")])
        outcome = make_builder(recorder).get("http://api.test/").end()
        assert outcome.response is None
        assert len(outcome.errors) == 1
        assert isinstance(outcome.errors[0], NetworkError)

    def test_cancelled_context(self, recorder: RecordingHandler, builder: RequestBuilder) -> None:
        ctx = RequestContext()
        ctx.cancel()
        outcome = builder.get("http://api.test/").context(ctx).end()
        assert isinstance(outcome.errors[0], NetworkError)
        assert recorder.requests == []

    def test_encoding_error_is_returned(self, builder: RequestBuilder) -> None:
        outcome = builder.post("http://api.test/").type("html").send("<p/>").end()
        assert isinstance(outcome.errors[0], EncodingError)

    @pytest.mark.parametrize("item", [{1, 2}, float("nan")])
    def test_unencodable_items_are_returned(
        self, recorder: RecordingHandler, builder: RequestBuilder, item: object
    ) -> None:
        outcome = builder.post("http://api.test/").send([item]).end()
        assert outcome.response is None
        assert len(outcome.errors) == 1
        assert isinstance(outcome.errors[0], EncodingError)
        assert recorder.requests == []

    def test_unencodable_items_raise_from_build(self, builder: RequestBuilder) -> None:
        with pytest.raises(EncodingError):
            builder.post("http://api.test/").send([{1, 2}]).build()


class TestEndStruct:
    """Tests for structured response decoding."""

    def test_decodes_model(self) -> None:
        recorder = RecordingHandler([json_response({"name": "egg", "servings": 2})])
        outcome = make_builder(recorder).get("http://api.test/recipes/1").end_struct(Recipe)
        assert outcome.errors == []
        assert outcome.data == Recipe(name="egg", servings=2)

    def test_decodes_generic_type(self) -> None:
        recorder = RecordingHandler([json_response([1, 2, 3])])
        outcome = make_builder(recorder).get("http://api.test/").end_struct(list[int])
        assert outcome.data == [1, 2, 3]

    def test_wrong_content_type(self) -> None:
        recorder = RecordingHandler([httpx.Response(200, text="<html/>", headers={"Content-Type": "text/html"})])
        outcome = make_builder(recorder).get("http://api.test/").end_struct(Recipe)
        assert len(outcome.errors) == 1
        assert isinstance(outcome.errors[0], ResponseDecodeError)
        assert "content-type is text/html not application/json" in str(outcome.errors[0])
        assert outcome.body == b"<html/>"
        assert outcome.response is not None

    def test_malformed_json(self) -> None:
        recorder = RecordingHandler(
            [httpx.Response(200, content=b"{oops", headers={"Content-Type": "application/json; charset=utf-8"})]
        )
        outcome = make_builder(recorder).get("http://api.test/").end_struct(Recipe)
        assert "json decode fail" in str(outcome.errors[0])

    def test_callback_not_called_on_decode_failure(self) -> None:
        recorder = RecordingHandler([httpx.Response(200, text="nope")])
        seen = []
        make_builder(recorder).get("http://api.test/").end_struct(Recipe, seen.append)
        assert seen == []


class TestRetryThroughBuilder:
    """Tests for retry() wired into end()."""

    def test_retries_until_success(self) -> None:
        recorder = RecordingHandler([httpx.Response(500), httpx.Response(500), httpx.Response(200)])
        builder = make_builder(recorder)

        with patch("reqchain.retry.time.sleep") as mock_sleep:
            outcome = builder.get("http://api.test/").retry(3, 0.1, 500).end()

        assert len(recorder.requests) == 3
        assert mock_sleep.call_count == 2
        assert outcome.response is not None
        assert outcome.response.status_code == 200
        assert outcome.response.headers[RETRY_COUNT_HEADER] == "2"

    def test_attempt_count_resets_per_end(self) -> None:
        recorder = RecordingHandler([httpx.Response(500), httpx.Response(200)])
        builder = make_builder(recorder)
        builder.set_keep_state(True)

        with patch("reqchain.retry.time.sleep"):
            builder.get("http://api.test/").retry(1, 0, 500).end()
            recorder.responses = [httpx.Response(500), httpx.Response(200)]
            outcome = builder.end()

        assert len(recorder.requests) == 4
        assert outcome.response is not None
        assert outcome.response.headers[RETRY_COUNT_HEADER] == "1"

    def test_retry_policy_survives_new_verb(self) -> None:
        builder = make_builder()
        builder.retry(2, 0, 503)
        builder.get("http://api.test/")
        assert builder.retry_policy.enabled
        assert builder.retry_policy.retryable_statuses == {503}

    def test_retry_from_config(self) -> None:
        config = ClientConfig(retry=RetryConfig(max_attempts=2, delay=0.5, statuses=[502]))
        builder = make_builder(config=config)
        assert builder.retry_policy.max_attempts == 2
        assert builder.retry_policy.delay == 0.5
        assert builder.retry_policy.retryable_statuses == {502}


class TestClone:
    """Tests for clone() isolation."""

    def test_mutations_do_not_leak(self, builder: RequestBuilder) -> None:
        builder.post("http://api.test/").send('{"tags": ["a"]}').set("X-A", "1").query("q=1")
        twin = builder.clone()
        twin.send('{"extra": true}').set("X-B", "2").query("p=2")
        twin.data.map_store["tags"].append("b")

        original = builder.build()
        assert json.loads(original.body) == {"tags": ["a"]}
        assert original.header("X-B") is None
        assert "p=2" not in original.url

    def test_clone_keeps_state_across_verbs(self, builder: RequestBuilder) -> None:
        twin = builder.post("http://api.test/").send('{"a": 1}').clone()
        descriptor = twin.put("http://api.test/b").build()
        assert descriptor.body == b'{"a":1}'

    def test_clone_shares_transport(self) -> None:
        recorder = RecordingHandler()
        builder = make_builder(recorder)
        twin = builder.clone()
        twin.get("http://api.test/twin").end()
        builder.get("http://api.test/original").end()
        assert [str(r.url) for r in recorder.requests] == [
            "http://api.test/twin",
            "http://api.test/original",
        ]

    def test_clone_copies_retry_policy(self, builder: RequestBuilder) -> None:
        builder.retry(2, 0, 500)
        twin = builder.clone()
        twin.retry_policy.retryable_statuses.add(503)
        assert builder.retry_policy.retryable_statuses == {500}

    def test_transport_settings_on_clone_leave_original_alone(self) -> None:
        builder = RequestBuilder(config=ClientConfig())
        try:
            twin = builder.clone()
            shared = builder._transport
            twin.timeout(5.0)
            assert builder._transport is shared
            assert twin._transport is None
            assert twin.config.timeout == 5.0
            assert builder.config.timeout is None
        finally:
            builder.close()

    def test_shared_client_closed_by_last_holder(self) -> None:
        builder = RequestBuilder(config=ClientConfig())
        twin = builder.clone()
        client = builder._transport.client
        assert twin._transport is builder._transport

        twin.close()
        assert not client.is_closed
        builder.close()
        assert client.is_closed

    def test_original_closing_first_leaves_clone_working(self) -> None:
        with RequestBuilder(config=ClientConfig()) as builder:
            twin = builder.clone()
            client = twin._transport.client
        assert not client.is_closed
        with twin:
            pass
        assert client.is_closed

    def test_rebuilt_clone_releases_shared_client(self) -> None:
        builder = RequestBuilder(config=ClientConfig())
        twin = builder.clone()
        shared = builder._transport.client
        twin.keep_alive(True)
        rebuilt = twin._ensure_transport()
        assert rebuilt is not None

        builder.close()
        assert shared.is_closed
        assert not rebuilt.client.is_closed
        twin.close()
        assert rebuilt.client.is_closed

    def test_supplied_transport_left_open(self, builder: RequestBuilder) -> None:
        twin = builder.clone()
        twin.close()
        builder.close()
        assert not builder._transport.client.is_closed


class TestTransportSettings:
    """Tests for settings that rebuild the owned transport."""

    def test_owned_transport_rebuilt(self) -> None:
        with RequestBuilder(config=ClientConfig()) as builder:
            first = builder._ensure_transport()
            builder.redirect_policy(follow=False, max_redirects=3)
            second = builder._ensure_transport()
            assert first is not second
            assert second is not None
            assert second.client.follow_redirects is False
            assert second.client.max_redirects == 3

    def test_supplied_transport_is_kept(self, builder: RequestBuilder) -> None:
        supplied = builder._transport
        builder.timeout(1.0).disable_redirects().keep_alive(True)
        assert builder._transport is supplied

    def test_invalid_proxy_recorded(self, builder: RequestBuilder) -> None:
        builder.get("http://api.test/").proxy("http://proxy.test:notaport")
        assert isinstance(builder.errors[0], ValidationError)

    def test_bad_tls_files_recorded(self, tmp_path: Path) -> None:
        builder = RequestBuilder(config=ClientConfig())
        builder.get("http://api.test/").tls(ca_bundle=str(tmp_path / "missing.pem"))
        outcome = builder.end()
        assert isinstance(outcome.errors[0], ValidationError)

    def test_phase_timeouts(self) -> None:
        with RequestBuilder(config=ClientConfig()) as builder:
            transport = builder.timeout(10.0).timeouts(connect=1.0, read=30.0)._ensure_transport()
            assert transport is not None
            assert transport.client.timeout == httpx.Timeout(10.0, connect=1.0, read=30.0)

    def test_redirect_policy_reaches_transport(self) -> None:
        def policy(next_request: httpx.Request, via: list[httpx.Request]) -> bool:
            return True

        with RequestBuilder(config=ClientConfig()) as builder:
            transport = builder.redirect_policy(max_redirects=5, policy=policy)._ensure_transport()
            assert transport is not None
            assert transport.config.redirect_policy is policy
            assert transport.client.max_redirects == 5

    def test_redirect_policy_stop_returns_redirect(self) -> None:
        recorder = RecordingHandler(
            [
                httpx.Response(301, headers={"Location": "http://other.test/"}),
                httpx.Response(200),
            ]
        )
        config = ClientConfig(redirect_policy=lambda next_request, via: next_request.url.host == "api.test")
        builder = RequestBuilder(config=config, transport=make_transport(recorder, config))
        outcome = builder.get("http://api.test/").end()
        assert outcome.errors == []
        assert outcome.response is not None
        assert outcome.response.status_code == 301
        assert len(recorder.requests) == 1


class TestCompression:
    """Tests for the Accept-Encoding request header."""

    def test_gzip_requested_by_default(self, builder: RequestBuilder) -> None:
        descriptor = builder.get("http://api.test/").build()
        assert descriptor.header("Accept-Encoding") == "gzip, deflate"

    def test_disable_compression(self, recorder: RecordingHandler, builder: RequestBuilder) -> None:
        builder.disable_compression().get("http://api.test/").end()
        assert recorder.last.headers["accept-encoding"] == "identity"

    def test_disabled_from_config(self) -> None:
        builder = make_builder(config=ClientConfig(compression=False))
        assert builder.get("http://api.test/").build().header("Accept-Encoding") == "identity"

    def test_caller_header_wins(self, builder: RequestBuilder) -> None:
        descriptor = builder.get("http://api.test/").set("Accept-Encoding", "br").build()
        assert [v for k, v in descriptor.headers if k.lower() == "accept-encoding"] == ["br"]


class TestDebugLogging:
    """Tests for debug dumps and curl logging."""

    def test_debug_dumps(self, builder: RequestBuilder, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="reqchain.debug"):
            builder.set_debug(True).post("http://api.test/").send('{"a": 1}').end()
        messages = [record.getMessage() for record in caplog.records]
        assert any(m.startswith("HTTP Request: POST / HTTP/1.1") for m in messages)
        assert any(m.startswith("HTTP Response: HTTP/1.1 200 OK") for m in messages)

    def test_curl_command(self, builder: RequestBuilder, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="reqchain.debug"):
            builder.set_curl_command(True).get("http://api.test/").end()
        assert any("CURL command line: curl -X GET" in r.getMessage() for r in caplog.records)

    def test_custom_logger(self, builder: RequestBuilder, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("tests.custom")
        with caplog.at_level(logging.INFO, logger="tests.custom"):
            builder.set_logger(logger).set_debug(True).get("http://api.test/").end()
        assert any(r.name == "tests.custom" for r in caplog.records)

    def test_debug_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REQCHAIN_DEBUG", "1")
        assert RequestBuilder().config.debug is True
