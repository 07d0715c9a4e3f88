"""Unit tests for the dispatcher and its verb helpers."""

import asyncio
import time

import pytest

import netdispatch
from netdispatch.request import (
    CancellationToken,
    DispatchMetrics,
    Dispatcher,
    ErrorClass,
    ErrorDescriptor,
    EventDrivenTransport,
    Failure,
    FormData,
    RequestConfig,
    ResponseType,
    StreamingTransport,
    Success,
    get_default_dispatcher,
    set_default_dispatcher,
)
from netdispatch.settings import DispatchSettings
from tests.helpers.mock_server import (
    ScriptedServer,
    connect_error,
    delayed,
    hang,
    respond,
)


@pytest.fixture
def dispatcher(settings: DispatchSettings, server: ScriptedServer) -> Dispatcher:
    """Create a dispatcher over the scripted server."""
    return Dispatcher(settings, http_transport=server.transport)


class TestTransportSelection:
    """Tests for picking a transport."""

    def test_event_driven_by_default(self, dispatcher: Dispatcher) -> None:
        """Without use_fetch the event-driven transport is used."""
        config = RequestConfig(method="GET", url="/x")

        assert isinstance(dispatcher.select_transport(config), EventDrivenTransport)

    def test_use_fetch_selects_streaming(self, dispatcher: Dispatcher) -> None:
        """use_fetch selects the streaming transport."""
        config = RequestConfig(method="GET", url="/x", use_fetch=True)

        assert isinstance(dispatcher.select_transport(config), StreamingTransport)


class TestDispatch:
    """Tests for Dispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_accepts_mapping(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A plain mapping is validated into a config."""
        server.add("GET", "/x", respond(200, content=b"ok"))

        outcome = await dispatcher.dispatch({"method": "get", "url": "/x"})

        assert isinstance(outcome, Success)
        assert outcome.value == "ok"
        assert outcome.attempts == 1
        assert server.request_log[0].method == "GET"

    @pytest.mark.asyncio
    async def test_missing_url_is_configuration_failure(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A config without a url fails before any I/O."""
        errors: list[ErrorDescriptor] = []

        outcome = await dispatcher.dispatch({"method": "GET", "on_error": errors.append})

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.CONFIGURATION
        assert "url" in outcome.error.message
        assert outcome.attempts == 0
        assert errors == [outcome.error]
        assert server.request_log == []

    @pytest.mark.asyncio
    async def test_unknown_field_is_configuration_failure(
        self, dispatcher: Dispatcher
    ) -> None:
        """Unknown config keys are rejected."""
        outcome = await dispatcher.dispatch({"method": "GET", "url": "/x", "retires": 3})

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.CONFIGURATION

    @pytest.mark.asyncio
    async def test_unserializable_body_makes_no_attempt(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A body that cannot be serialized resolves with zero attempts."""
        outcome = await dispatcher.post("/x", {"when": object()}, retries=3)

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.CONFIGURATION
        assert outcome.attempts == 0
        assert server.request_log == []

    @pytest.mark.asyncio
    async def test_success_callback_receives_value(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """on_success is called once with the decoded value."""
        server.add("GET", "/x", respond(200, json_body={"a": 1}))
        values: list[object] = []
        errors: list[ErrorDescriptor] = []

        await dispatcher.dispatch(
            RequestConfig(
                method="GET",
                url="/x",
                response_type=ResponseType.JSON,
                on_success=values.append,
                on_error=errors.append,
            )
        )

        assert values == [{"a": 1}]
        assert errors == []

    @pytest.mark.asyncio
    async def test_error_callback_receives_descriptor(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """on_error is called once with the final error."""
        server.add("GET", "/x", respond(500, content=b"oops"))
        values: list[object] = []
        errors: list[ErrorDescriptor] = []

        outcome = await dispatcher.dispatch(
            RequestConfig(
                method="GET", url="/x", on_success=values.append, on_error=errors.append
            )
        )

        assert isinstance(outcome, Failure)
        assert values == []
        assert len(errors) == 1
        assert errors[0].status_code == 500
        assert errors[0].body == "oops"

    @pytest.mark.asyncio
    async def test_raising_success_callback_still_returns_outcome(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """An exception from on_success does not escape dispatch."""
        server.add("GET", "/x", respond(200, content=b"ok"))

        def broken(value: object) -> None:
            raise ValueError("handler bug")

        outcome = await dispatcher.get("/x", on_success=broken)

        assert isinstance(outcome, Success)
        assert outcome.value == "ok"

    @pytest.mark.asyncio
    async def test_raising_error_callback_still_returns_outcome(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """An exception from on_error does not escape dispatch."""
        server.add("GET", "/x", respond(404))

        def broken(error: ErrorDescriptor) -> None:
            raise RuntimeError("handler bug")

        outcome = await dispatcher.get("/x", on_error=broken)

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.STATUS

    @pytest.mark.asyncio
    async def test_malformed_json_is_decode_failure(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A 2xx body that is not JSON resolves as DECODE and is not retried."""
        server.add("GET", "/x", respond(200, content=b"{not json"))

        outcome = await dispatcher.dispatch(
            {"method": "GET", "url": "/x", "response_type": "json", "retries": 3}
        )

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.DECODE
        assert outcome.attempts == 1
        assert server.count("GET", "/x") == 1

    @pytest.mark.asyncio
    async def test_timeout(self, dispatcher: Dispatcher, server: ScriptedServer) -> None:
        """A hung server resolves as TIMEOUT once the deadline passes."""
        server.add("GET", "/slow", hang())

        start = time.perf_counter()
        outcome = await dispatcher.dispatch({"method": "GET", "url": "/slow", "timeout_ms": 50})
        elapsed = time.perf_counter() - start

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.TIMEOUT
        assert elapsed >= 0.045

    @pytest.mark.asyncio
    async def test_records_dispatch_metrics(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Each resolved call is counted, failures by class."""
        server.add("GET", "/x", respond(200))
        server.add("GET", "/y", respond(404))

        await dispatcher.get("/x")
        await dispatcher.get("/y")

        metrics = DispatchMetrics.get_instance()
        assert metrics.calls == 2
        assert metrics.failures_by_class == {"STATUS": 1}


class TestRetry:
    """Tests for retry behavior through the dispatcher."""

    @pytest.mark.asyncio
    async def test_fails_twice_then_succeeds(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Two failures then a success takes three attempts."""
        server.add("GET", "/x", connect_error(), respond(503), respond(200, content=b"ok"))

        outcome = await dispatcher.dispatch(
            {"method": "GET", "url": "/x", "retries": 2, "retry_delay_ms": 10}
        )

        assert isinstance(outcome, Success)
        assert outcome.value == "ok"
        assert outcome.attempts == 3
        assert server.count("GET", "/x") == 3
        assert DispatchMetrics.get_instance().retries == 2

    @pytest.mark.parametrize("use_fetch", [False, True])
    @pytest.mark.asyncio
    async def test_attempts_bounded_by_budget(
        self, dispatcher: Dispatcher, server: ScriptedServer, use_fetch: bool
    ) -> None:
        """Total attempts never exceed retries + 1 on either transport."""
        server.add("GET", "/x", connect_error())

        outcome = await dispatcher.dispatch(
            {
                "method": "GET",
                "url": "/x",
                "retries": 2,
                "retry_delay_ms": 0,
                "use_fetch": use_fetch,
            }
        )

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.NETWORK
        assert outcome.attempts == 3
        assert server.count("GET", "/x") == 3

    @pytest.mark.asyncio
    async def test_no_retries_by_default(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Without a retry budget a failure resolves after one attempt."""
        server.add("GET", "/x", respond(503))

        outcome = await dispatcher.get("/x")

        assert isinstance(outcome, Failure)
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_schedule_sets_delays(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A retry schedule replaces the constant delay."""
        server.add("GET", "/x", respond(503), respond(503), respond(200))

        start = time.perf_counter()
        outcome = await dispatcher.dispatch(
            {"method": "GET", "url": "/x", "retries": 2, "retry_schedule": [0, 60]}
        )
        elapsed = time.perf_counter() - start

        assert isinstance(outcome, Success)
        assert outcome.attempts == 3
        assert elapsed >= 0.055


class TestCancellation:
    """Tests for cancellation through the dispatcher."""

    @pytest.mark.asyncio
    async def test_abort_before_send(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A token signaled before dispatch prevents every attempt."""
        server.add("GET", "/x", respond(200))
        token = CancellationToken()
        token.cancel()

        outcome = await dispatcher.get("/x", cancel_token=token, retries=3)

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.ABORT
        assert outcome.attempts == 0
        assert server.request_log == []

    @pytest.mark.asyncio
    async def test_abort_mid_flight_is_not_network_error(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Aborting an in-flight streaming request yields ABORT and no retry."""
        server.add("GET", "/x", hang())
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)

        outcome = await dispatcher.get("/x", cancel_token=token, use_fetch=True, retries=3)

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.ABORT
        assert outcome.attempts == 1
        assert server.count("GET", "/x") == 1

    @pytest.mark.asyncio
    async def test_abort_before_delayed_network_error(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A token signaled before a late connection error resolves as ABORT."""
        server.add("GET", "/x", delayed(0.1, connect_error()))
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)

        outcome = await dispatcher.get("/x", cancel_token=token, retries=0)

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.ABORT
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_abort_event_driven_hang_without_timeout(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """An unanswered event-driven request still stops when the token fires."""
        server.add("GET", "/x", hang())
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)

        outcome = await asyncio.wait_for(
            dispatcher.get("/x", cancel_token=token, timeout_ms=None), 1.0
        )

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.ABORT

    @pytest.mark.asyncio
    async def test_failure_after_token_signaled_is_abort(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """An attempt that fails once the token is signaled is not retried."""
        server.add("GET", "/x", respond(200, content=b"x" * 20000))
        token = CancellationToken()

        def cancel_then_fail(loaded: int, total: int | None) -> None:
            token.cancel("closed")
            raise RuntimeError("listener gone")

        outcome = await dispatcher.get(
            "/x", cancel_token=token, on_progress=cancel_then_fail, retries=3
        )

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.ABORT
        assert outcome.error.message == "closed"
        assert outcome.attempts == 1
        assert server.count("GET", "/x") == 1

    @pytest.mark.asyncio
    async def test_abort_during_retry_delay(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Signaling the token during a retry delay stops further attempts."""
        server.add("GET", "/x", connect_error())
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel, "gave up")

        start = time.perf_counter()
        outcome = await dispatcher.get(
            "/x", cancel_token=token, retries=3, retry_delay_ms=5000
        )
        elapsed = time.perf_counter() - start

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.ABORT
        assert outcome.error.message == "gave up"
        assert outcome.attempts == 1
        assert elapsed < 2


class TestVerbHelpers:
    """Tests for the GET/DELETE/POST/PUT/PATCH helpers."""

    @pytest.mark.asyncio
    async def test_get_encodes_query(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """GET data is encoded into the URL query."""
        server.add("GET", "/search", respond(200))

        await dispatcher.get("/search", {"a": 1, "b": "x y"})

        assert server.request_log[0].url.endswith("/search?a=1&b=x%20y")

    @pytest.mark.asyncio
    async def test_get_items_page(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A paged GET resolves with the decoded JSON payload."""
        server.add("GET", "/items", respond(200, json_body={"items": []}))

        outcome = await dispatcher.get("/items", {"page": 2}, response_type="json")

        assert isinstance(outcome, Success)
        assert outcome.value == {"items": []}
        assert server.request_log[0].url.endswith("/items?page=2")

    @pytest.mark.asyncio
    async def test_delete_appends_to_existing_query(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Query data joins an existing query with '&'."""
        server.add("DELETE", "/items", respond(204))

        outcome = await dispatcher.delete("/items?force=true", {"id": 7})

        assert isinstance(outcome, Success)
        assert server.request_log[0].method == "DELETE"
        assert server.request_log[0].url.endswith("/items?force=true&id=7")

    @pytest.mark.asyncio
    async def test_post_sends_json_by_default(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """POST serializes data as compact JSON with a JSON content type."""
        server.add("POST", "/items", respond(201, json_body={"id": 1}))

        outcome = await dispatcher.post("/items", {"a": 1, "b": [1, 2]})

        assert isinstance(outcome, Success)
        record = server.request_log[0]
        assert record.headers["content-type"] == "application/json"
        assert record.body == b'{"a":1,"b":[1,2]}'

    @pytest.mark.asyncio
    async def test_put_keeps_caller_content_type(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A caller-supplied content type is not replaced."""
        server.add("PUT", "/note", respond(200))

        await dispatcher.put("/note", "plain text", headers={"content-type": "text/plain"})

        record = server.request_log[0]
        assert record.headers["content-type"] == "text/plain"
        assert record.body == b"plain text"

    @pytest.mark.asyncio
    async def test_patch_with_form_data(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """FormData bodies skip the JSON content type."""
        server.add("PATCH", "/profile", respond(200))

        await dispatcher.patch("/profile", FormData(fields={"name": "Ada"}))

        record = server.request_log[0]
        assert record.headers["content-type"] == "application/x-www-form-urlencoded"
        assert record.body == b"name=Ada"

    @pytest.mark.asyncio
    async def test_fixed_fields_override_overrides(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """The helper's method wins over a conflicting override."""
        server.add("POST", "/items", respond(200))

        await dispatcher.post("/items", {"a": 1}, method="GET")

        assert server.request_log[0].method == "POST"
        assert server.count("POST", "/items") == 1

    @pytest.mark.asyncio
    async def test_non_mapping_headers_is_configuration_failure(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Headers of the wrong shape resolve without raising or sending."""
        errors: list[ErrorDescriptor] = []

        outcome = await dispatcher.post(
            "/x", {"a": 1}, headers=5, on_error=errors.append
        )

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.CONFIGURATION
        assert "headers" in outcome.error.message
        assert outcome.attempts == 0
        assert errors == [outcome.error]
        assert server.request_log == []

    @pytest.mark.asyncio
    async def test_non_mapping_query_is_configuration_failure(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Query data given as pairs instead of a mapping is rejected."""
        outcome = await dispatcher.get("/x", [("a", 1)])  # type: ignore[arg-type]

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.CONFIGURATION
        assert "query" in outcome.error.message
        assert outcome.attempts == 0
        assert server.request_log == []

    @pytest.mark.asyncio
    async def test_non_string_url_is_configuration_failure(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """A helper called with a non-string URL resolves as CONFIGURATION."""
        outcome = await dispatcher.delete(42)  # type: ignore[arg-type]

        assert isinstance(outcome, Failure)
        assert outcome.error.error_class == ErrorClass.CONFIGURATION
        assert server.request_log == []


class TestModuleFunctions:
    """Tests for the module-level helpers backed by the default dispatcher."""

    def test_default_dispatcher_is_created_once(self) -> None:
        """The default dispatcher is created lazily and reused."""
        first = get_default_dispatcher()

        assert get_default_dispatcher() is first

    @pytest.mark.asyncio
    async def test_module_helpers_use_default(
        self, dispatcher: Dispatcher, server: ScriptedServer
    ) -> None:
        """Package-level verbs route through the installed dispatcher."""
        set_default_dispatcher(dispatcher)
        server.add("GET", "/x", respond(200, content=b"got"))
        server.add("POST", "/x", respond(200, content=b"posted"))

        got = await netdispatch.get("/x")
        posted = await netdispatch.post("/x", {"a": 1})
        dispatched = await netdispatch.dispatch({"method": "GET", "url": "/x"})

        assert isinstance(got, Success)
        assert got.value == "got"
        assert isinstance(posted, Success)
        assert posted.value == "posted"
        assert isinstance(dispatched, Success)
