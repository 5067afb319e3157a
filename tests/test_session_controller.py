"""
Tests for the session controller state machine
"""

import asyncio

import pytest

from briefrr.ai.prompts import SYSTEM_BRIEF, SYSTEM_EXPLAIN, SYSTEM_QUERY
from briefrr.models.messages import ChunkMessage
from briefrr.models.session import FailureKind, Mode, SessionStatus, SettledOutcome
from briefrr.relay.channel import ChannelHub
from briefrr.session.content import StaticContentProvider
from briefrr.session.controller import SessionController, classify_error

from fakes import (
    PAGE_TEXT, CountingHub, FakeClock, RecordingView, ScriptedGemini,
    broken_stream_response, error_response, make_briefrr, stream_response, wait_for
)


def make_session(gemini, clock=None, content=PAGE_TEXT, api_key="test-key", hub=None):
    """Briefrr plus a controller driven by the fake clock"""
    clock = clock or FakeClock()
    briefrr = make_briefrr(gemini, clock, api_key=api_key)
    view = RecordingView()
    if hub is None:
        controller = briefrr.create_controller(
            StaticContentProvider(content, title="Test Page", site_name="example.com"),
            view,
            clock=clock.time,
            sleep=clock.sleep
        )
    else:
        briefrr.relay.attach(hub)
        controller = SessionController(
            hub=hub,
            rate_limiter=briefrr.rate_limiter,
            store=briefrr.store,
            content_provider=StaticContentProvider(content, title="Test Page"),
            view=view,
            config=briefrr.config,
            clock=clock.time,
            sleep=clock.sleep
        )
    return briefrr, controller, view


class TestSuccessfulRun:
    """Streaming into a settled result"""

    @pytest.mark.asyncio
    async def test_brief_streams_and_settles(self):
        gemini = ScriptedGemini(stream_response("Hello", " world", "!"))
        briefrr, controller, view = make_session(gemini)

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert state.status == SessionStatus.SETTLED
        assert state.outcome == SettledOutcome.OK
        assert state.accumulated_text == "Hello world!"
        assert state.failure is None
        assert view.renders == [
            ("Hello", True),
            ("Hello world", True),
            ("Hello world!", True),
            ("Hello world!", False),
        ]
        assert gemini.calls == 1
        assert gemini.body()["system_instruction"]["parts"][0]["text"] == SYSTEM_BRIEF
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_prompt_embeds_page(self):
        gemini = ScriptedGemini(stream_response("ok"))
        briefrr, controller, _ = make_session(gemini)

        controller.run(Mode.EXPLAIN)
        await controller.wait_settled()

        body = gemini.body()
        prompt = body["contents"][0]["parts"][0]["text"]
        assert body["system_instruction"]["parts"][0]["text"] == SYSTEM_EXPLAIN
        assert "**Page Title**: Test Page" in prompt
        assert "**Site**: example.com" in prompt
        assert PAGE_TEXT in prompt
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_long_content_is_capped(self):
        gemini = ScriptedGemini(stream_response("ok"))
        briefrr, controller, _ = make_session(gemini, content="word " * 20000)

        controller.run(Mode.BRIEF)
        await controller.wait_settled()

        prompt = gemini.body()["contents"][0]["parts"][0]["text"]
        assert prompt.count("word") == 10000
        await briefrr.aclose()


class TestFailures:
    """Classified failures and their retry policy"""

    @pytest.mark.asyncio
    async def test_missing_credential_makes_no_call(self):
        gemini = ScriptedGemini()
        briefrr, controller, view = make_session(gemini, api_key=None)

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert state.outcome == SettledOutcome.FATAL
        assert state.failure.kind == FailureKind.MISSING_CREDENTIAL
        assert state.failure.message.startswith("Please set up your Gemini API key first")
        assert not state.failure.show_retry_button
        assert gemini.calls == 0
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_short_content_is_fatal(self):
        gemini = ScriptedGemini()
        briefrr, controller, _ = make_session(gemini, content="x" * 40)

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert state.outcome == SettledOutcome.FATAL
        assert state.failure.kind == FailureKind.EXTRACTION
        assert gemini.calls == 0
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_invalid_key_is_fatal(self):
        gemini = ScriptedGemini(error_response(403, "API key not valid"))
        briefrr, controller, view = make_session(gemini)

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert state.outcome == SettledOutcome.FATAL
        assert state.failure.kind == FailureKind.INVALID_CREDENTIAL
        assert view.errors == [state.failure]
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_network_error_offers_manual_retry(self):
        gemini = ScriptedGemini(error_response(500, "Failed to fetch"), stream_response("back"))
        clock = FakeClock()
        briefrr, controller, view = make_session(gemini, clock)

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert state.outcome == SettledOutcome.RETRYABLE
        assert state.failure.kind == FailureKind.NETWORK
        assert state.failure.show_retry_button
        assert not controller.countdown_active

        # Manual retry goes through the spacing gate like any other run
        clock.advance(4)
        controller.retry()
        state = await controller.wait_settled()
        assert state.outcome == SettledOutcome.OK
        assert state.accumulated_text == "back"
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_connection_drop_after_text_offers_manual_retry(self):
        gemini = ScriptedGemini(broken_stream_response("Hello"))
        briefrr, controller, view = make_session(gemini)

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert view.renders == [("Hello", True)]
        assert state.status == SessionStatus.SETTLED
        assert state.outcome == SettledOutcome.RETRYABLE
        assert state.failure.kind == FailureKind.NETWORK
        assert state.failure.show_retry_button
        assert view.errors == [state.failure]
        assert not controller.countdown_active
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_spacing_denial_counts_down(self):
        gemini = ScriptedGemini()
        clock = FakeClock()
        briefrr, controller, view = make_session(gemini, clock)
        await briefrr.store.set_last_request_time(clock.ms() - 1000)

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert state.failure.kind == FailureKind.THROTTLED
        assert state.failure.retry_after_ms == 3000
        assert gemini.calls == 0
        await wait_for(lambda: gemini.calls == 1 and controller.state.status == SessionStatus.SETTLED)
        assert controller.state.outcome == SettledOutcome.OK
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_rate_limit_countdown_reruns_same_mode(self):
        """A 429 counts down from 60s, then re-runs the same mode"""
        gemini = ScriptedGemini(error_response(429, "Quota exceeded"), stream_response("Hello world!"))
        clock = FakeClock()
        briefrr, controller, view = make_session(gemini, clock)

        controller.run(Mode.EXPLAIN)
        state = await controller.wait_settled()

        assert state.outcome == SettledOutcome.RETRYABLE
        assert state.failure.kind == FailureKind.THROTTLED
        assert state.failure.retry_after_ms == 60000
        assert not state.failure.show_retry_button
        assert controller.countdown_active

        await wait_for(lambda: gemini.calls == 2 and controller.state.outcome == SettledOutcome.OK)

        assert view.countdowns[0] == 60000
        assert view.countdowns[-1] == 0
        assert view.countdowns == sorted(view.countdowns, reverse=True)
        # Ticks at least every 100 ms of the 60 s countdown
        assert len(view.countdowns) >= 600
        assert controller.state.mode == Mode.EXPLAIN
        assert controller.state.accumulated_text == "Hello world!"
        assert gemini.body(1)["system_instruction"]["parts"][0]["text"] == SYSTEM_EXPLAIN
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_channel_lost_without_text(self):
        clock = FakeClock()
        briefrr = make_briefrr(ScriptedGemini(), clock)
        view = RecordingView()
        # Hub with no relay listening
        controller = SessionController(
            hub=ChannelHub(),
            rate_limiter=briefrr.rate_limiter,
            store=briefrr.store,
            content_provider=StaticContentProvider(PAGE_TEXT),
            view=view,
            config=briefrr.config,
            clock=clock.time,
            sleep=clock.sleep
        )

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert state.outcome == SettledOutcome.RETRYABLE
        assert state.failure.kind == FailureKind.CHANNEL_LOST
        assert state.failure.message == "Connection to extension lost. Please try again."
        assert state.failure.show_retry_button
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_channel_lost_after_text_keeps_result(self):
        clock = FakeClock()
        briefrr = make_briefrr(ScriptedGemini(), clock)
        hub = ChannelHub()

        def flaky_relay(server_end):
            async def serve():
                await server_end.receive()
                server_end.send(ChunkMessage("Partial answer").to_dict())
                server_end.disconnect()

            asyncio.get_running_loop().create_task(serve())
            return True

        hub.on_connect(flaky_relay)
        view = RecordingView()
        controller = SessionController(
            hub=hub,
            rate_limiter=briefrr.rate_limiter,
            store=briefrr.store,
            content_provider=StaticContentProvider(PAGE_TEXT),
            view=view,
            config=briefrr.config,
            clock=clock.time,
            sleep=clock.sleep
        )

        controller.run(Mode.BRIEF)
        state = await controller.wait_settled()

        assert state.outcome == SettledOutcome.OK
        assert state.accumulated_text == "Partial answer"
        assert view.renders[-1] == ("Partial answer", False)
        await briefrr.aclose()


class TestModesAndCancellation:
    """Debounce, query mode and superseded runs"""

    @pytest.mark.asyncio
    async def test_rapid_toggling_issues_one_call(self):
        gemini = ScriptedGemini()
        briefrr, controller, view = make_session(gemini)

        controller.select_mode(Mode.BRIEF)
        controller.select_mode(Mode.EXPLAIN)
        controller.select_mode(Mode.BRIEF)
        controller.select_mode(Mode.EXPLAIN)

        await wait_for(lambda: controller.state.status == SessionStatus.SETTLED)
        await asyncio.sleep(0.05)

        assert gemini.calls == 1
        assert gemini.body()["system_instruction"]["parts"][0]["text"] == SYSTEM_EXPLAIN
        assert view.modes == [Mode.BRIEF, Mode.EXPLAIN, Mode.BRIEF, Mode.EXPLAIN]
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_query_mode_waits_for_question(self):
        gemini = ScriptedGemini(stream_response("It is a tool."))
        briefrr, controller, view = make_session(gemini)

        controller.select_mode(Mode.QUERY)
        await asyncio.sleep(0.05)

        assert gemini.calls == 0
        assert view.query_prompts == 1
        assert controller.state.status == SessionStatus.IDLE

        await controller.submit_query("What is Briefrr?")

        assert controller.state.outcome == SettledOutcome.OK
        body = gemini.body()
        assert body["system_instruction"]["parts"][0]["text"] == SYSTEM_QUERY
        assert "**User Question**: What is Briefrr?" in body["contents"][0]["parts"][0]["text"]
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_empty_query_is_rejected(self):
        gemini = ScriptedGemini()
        briefrr, controller, _ = make_session(gemini)

        controller.select_mode(Mode.QUERY)
        await controller.submit_query("   ")

        assert controller.state.failure.kind == FailureKind.EMPTY_QUERY
        assert controller.state.failure.message == "Please enter a search query."
        assert gemini.calls == 0
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_new_run_cancels_live_stream(self):
        gate = asyncio.Event()
        gemini = ScriptedGemini(
            stream_response("Old ", "text", gate=gate),
            stream_response("New text"),
        )
        clock = FakeClock()
        hub = CountingHub()
        briefrr, controller, view = make_session(gemini, clock, hub=hub)

        controller.run(Mode.BRIEF)
        await wait_for(lambda: controller.state.accumulated_text == "Old ")
        first_run = controller.state.run_id

        clock.advance(5)
        controller.run(Mode.EXPLAIN)
        gate.set()
        state = await controller.wait_settled()

        assert state.run_id == first_run + 1
        assert state.accumulated_text == "New text"
        assert state.outcome == SettledOutcome.OK
        assert hub.clients[0].closed
        assert hub.disconnect_calls[0] == 1
        assert ("Old text", True) not in view.renders
        await wait_for(lambda: briefrr.relay.active_streams == 0)
        await briefrr.aclose()

    @pytest.mark.asyncio
    async def test_close_cancels_everything(self):
        gemini = ScriptedGemini(error_response(429))
        briefrr, controller, view = make_session(gemini)

        controller.run(Mode.BRIEF)
        await controller.wait_settled()
        assert controller.countdown_active

        controller.close()

        assert not controller.countdown_active
        assert controller.state.status == SessionStatus.IDLE
        assert controller.state.cancellation_token.cancelled
        assert controller.state.cancellation_token.reason == "closed"
        assert not controller.state.cancellation_token.cancel("again")
        assert view.closed == 1
        await asyncio.sleep(0.05)
        assert gemini.calls == 1
        await briefrr.aclose()


class TestClassifyError:
    """Relay error strings to user-facing failures"""

    def test_invalid_key(self):
        failure = classify_error("INVALID_KEY")
        assert failure.kind == FailureKind.INVALID_CREDENTIAL
        assert not failure.retryable

    def test_rate_limited_with_duration(self):
        failure = classify_error("RATE_LIMITED:120000:Slow down: please")
        assert failure.kind == FailureKind.THROTTLED
        assert failure.retry_after_ms == 120000
        assert failure.message == "Slow down: please"

    @pytest.mark.parametrize("error", ["RATE_LIMITED", "RATE_LIMITED:abc:msg", "RATE_LIMITED:0:msg"])
    def test_rate_limited_without_duration(self, error):
        failure = classify_error(error)
        assert failure.kind == FailureKind.THROTTLED
        assert failure.retry_after_ms == 0
        assert failure.show_retry_button

    @pytest.mark.parametrize("error", [
        "NETWORK_ERROR:Failed to fetch: boom",
        "Failed to fetch",
        "NetworkError when attempting to fetch resource.",
    ])
    def test_network_class(self, error):
        failure = classify_error(error)
        assert failure.kind == FailureKind.NETWORK
        assert failure.message == "Couldn't connect to Gemini. Please check your internet connection."

    def test_anything_else(self):
        failure = classify_error("Internal error")
        assert failure.kind == FailureKind.UPSTREAM
        assert failure.message == "The response was interrupted. Internal error"
        assert failure.show_retry_button
