"""Tests for StreamWordSession.

Tests cover:
1. JSON entries (single and split chunks) become the first version
2. Free-text streams fall back to a markdown entry
3. Metadata side channel merging (versions, metadata fields, active id)
4. Upstream failures propagate and block the store payload
5. Single-use guard, pull-based pacing and cancellation
6. Lifecycle logging, including a failing chunk logger
"""

import asyncio
import json
import unittest
from unittest.mock import MagicMock

from adapter.fake.word_stream import FakeWordStreamAdapter
from domain.model.errors import SessionAlreadyStartedError, SessionNotCompletedError
from domain.model.word import SessionState, StreamEvent, StreamRequest, WordChunk
from port.word_stream import WordStreamCancelledError
from services.stream_word_session import StreamWordSession
from utils.logging import LoggingSessionLogger
from utils.markdown_normalizer import normalize_markdown_entity


def identity(entity):
    return entity


def make_request(**overrides) -> StreamRequest:
    fields = dict(
        user_id="user-1",
        term="test",
        language="ENGLISH",
        key="cache-key",
        flavor="BILINGUAL",
        model="gpt",
        token="token-1",
        capture_history=True,
    )
    fields.update(overrides)
    return StreamRequest(**fields)


async def drain(session: StreamWordSession) -> list[WordChunk]:
    return [chunk async for chunk in session.stream()]


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared fixtures: identity normalizer and a mock session logger."""

    def setUp(self):
        self.logger = MagicMock()

    def make_session(self, events, error=None, request=None, normalize=identity):
        self.word_stream = FakeWordStreamAdapter(events=events, error=error)
        return StreamWordSession(
            request or make_request(),
            word_stream=self.word_stream,
            normalize=normalize,
            session_logger=self.logger,
        )

    def logged(self, tag: str) -> list[dict]:
        return [
            call.args[1] for call in self.logger.info.call_args_list
            if call.args[0] == f"[StreamWordSession] {tag}"
        ]


class TestJsonEntry(SessionTestCase):
    """Structured JSON payloads."""

    async def test_single_json_chunk_becomes_first_version(self):
        """Test one JSON chunk yields one chunk and one version."""
        raw = '{"id":"1","term":"test","definitions":[]}'
        session = self.make_session([StreamEvent.chunk(raw)])

        chunks = await drain(session)

        self.assertEqual(chunks, [WordChunk(chunk=raw, language="ENGLISH")])
        payload = session.get_store_payload()
        self.assertEqual(payload.key, "cache-key")
        self.assertEqual(payload.versions[0]["id"], "1")
        self.assertEqual(payload.options.active_version_id, "1")

    async def test_json_entry_is_kept_with_resolved_flavor(self):
        """Test versions[0] equals the parsed object plus the request flavor."""
        entry = {"id": "1", "term": "test", "definitions": [], "metadata": {"origin": "model"}}
        session = self.make_session([StreamEvent.chunk(json.dumps(entry))])

        await drain(session)

        payload = session.get_store_payload()
        self.assertEqual(payload.versions, [{**entry, "flavor": "BILINGUAL"}])
        self.assertNotIn("markdown", payload.versions[0])
        self.assertEqual(payload.options.metadata, {"origin": "model", "flavor": "BILINGUAL"})

    async def test_json_split_across_chunks_is_parsed_after_accumulation(self):
        """Test a JSON document split over several chunks is parsed as a whole."""
        raw = json.dumps({"id": "42", "term": "test", "markdown": "# test"})
        parts = [raw[:5], raw[5:17], raw[17:]]
        session = self.make_session([StreamEvent.chunk(p) for p in parts])

        chunks = await drain(session)

        self.assertEqual([c.chunk for c in chunks], parts)
        payload = session.get_store_payload()
        self.assertEqual(len(payload.versions), 1)
        self.assertEqual(payload.versions[0]["id"], "42")
        self.assertEqual(payload.versions[0]["markdown"], "# test")
        self.assertEqual(payload.options.active_version_id, "42")

    async def test_version_id_used_when_id_missing(self):
        """Test activeVersionId falls back to the entry's versionId."""
        session = self.make_session([StreamEvent.chunk('{"versionId": 7, "term": "test"}')])

        await drain(session)

        self.assertEqual(session.get_store_payload().options.active_version_id, 7)

    async def test_entity_flavor_wins_over_request(self):
        """Test the entry's own flavor is kept when present."""
        session = self.make_session([StreamEvent.chunk('{"id": "1", "flavor": "MONOLINGUAL"}')])

        await drain(session)

        payload = session.get_store_payload()
        self.assertEqual(payload.versions[0]["flavor"], "MONOLINGUAL")
        self.assertEqual(payload.options.metadata["flavor"], "MONOLINGUAL")


class TestMarkdownEntry(SessionTestCase):
    """Free-text payloads."""

    async def test_markdown_chunk_falls_back_to_markdown_entry(self):
        """Test non-JSON text becomes {term, language, markdown} with no active id."""
        session = self.make_session([StreamEvent.chunk("# Title")])

        chunks = await drain(session)

        self.assertEqual(chunks, [WordChunk(chunk="# Title", language="ENGLISH")])
        payload = session.get_store_payload()
        self.assertEqual(payload.versions, [{
            "term": "test",
            "language": "ENGLISH",
            "markdown": "# Title",
            "flavor": "BILINGUAL",
        }])
        self.assertEqual(payload.options.metadata, {"flavor": "BILINGUAL"})
        self.assertIsNone(payload.options.active_version_id)

    async def test_markdown_is_exact_concatenation_of_chunks(self):
        """Test the markdown body keeps every chunk byte-for-byte in order."""
        parts = ["# Ti", "tle\n\n", "- first  ", "\n- {second}"]
        session = self.make_session([StreamEvent.chunk(p) for p in parts])

        await drain(session)

        payload = session.get_store_payload()
        self.assertEqual(payload.versions[0]["markdown"], "".join(parts))
        self.assertIsNone(payload.options.active_version_id)

    async def test_json_primitive_is_treated_as_text(self):
        """Test a payload that parses to a primitive is not a structured entry."""
        session = self.make_session([StreamEvent.chunk("42")])

        await drain(session)

        self.assertEqual(session.get_store_payload().versions[0]["markdown"], "42")

    async def test_empty_stream_produces_empty_markdown_entry(self):
        """Test a stream with no chunks still completes with an empty markdown entry."""
        session = self.make_session([])

        chunks = await drain(session)

        self.assertEqual(chunks, [])
        payload = session.get_store_payload()
        self.assertEqual(payload.versions[0]["markdown"], "")
        self.assertEqual(session.state, SessionState.COMPLETED)


class TestMetadataMerge(SessionTestCase):
    """Metadata side channel reconciliation."""

    async def test_metadata_version_with_same_id_is_updated(self):
        """Test the streamed fields overwrite the metadata version with the same id."""
        metadata = {
            "versions": [{"id": "v1", "markdown": "old"}],
            "activeVersionId": "v1",
            "flavor": "MONO",
            "reviewer": "r1",
        }
        entry = {"id": "v1", "markdown": "new", "metadata": {"source": "llm"}}
        session = self.make_session([
            StreamEvent.metadata(json.dumps(metadata)),
            StreamEvent.chunk(json.dumps(entry)),
        ])

        chunks = await drain(session)

        self.assertEqual(len(chunks), 1)
        payload = session.get_store_payload()
        self.assertEqual(len(payload.versions), 1)
        self.assertEqual(payload.versions[0], {
            "id": "v1",
            "markdown": "new",
            "metadata": {"source": "llm"},
            "flavor": "MONO",
        })
        self.assertEqual(payload.options.metadata, {"flavor": "MONO", "reviewer": "r1", "source": "llm"})
        self.assertEqual(payload.options.active_version_id, "v1")

    async def test_metadata_extra_fields_kept_version_keys_dropped(self):
        """Test extraneous metadata fields survive while versions/activeVersionId do not."""
        metadata = {"versions": [{"id": "v1"}], "activeVersionId": "v1", "reviewer": "r1"}
        session = self.make_session([
            StreamEvent.metadata(json.dumps(metadata)),
            StreamEvent.chunk('{"id": "v1"}'),
        ])

        await drain(session)

        options = session.get_store_payload().options
        self.assertEqual(options.metadata, {"reviewer": "r1", "flavor": "BILINGUAL"})
        self.assertNotIn("versions", options.metadata)
        self.assertNotIn("activeVersionId", options.metadata)

    async def test_new_entry_is_appended_after_known_versions(self):
        """Test an entry with an unknown id is appended as the tail version."""
        metadata = {
            "versions": [{"id": "v1", "markdown": "old"}],
            "activeVersionId": "v1",
        }
        session = self.make_session([
            StreamEvent.metadata(json.dumps(metadata)),
            StreamEvent.chunk('{"id": "v2", "markdown": "new"}'),
        ])

        await drain(session)

        payload = session.get_store_payload()
        self.assertEqual([v["id"] for v in payload.versions], ["v1", "v2"])
        self.assertEqual(payload.versions[1]["markdown"], "new")
        self.assertEqual({v["flavor"] for v in payload.versions}, {"BILINGUAL"})
        self.assertEqual(payload.options.active_version_id, "v1")

    async def test_markdown_entry_appended_to_metadata_versions(self):
        """Test a free-text stream is never dropped when metadata lists versions."""
        metadata = {"versions": [{"id": "v1", "markdown": "old"}]}
        session = self.make_session([
            StreamEvent.metadata(json.dumps(metadata)),
            StreamEvent.chunk("fresh text"),
        ])

        await drain(session)

        payload = session.get_store_payload()
        self.assertEqual(len(payload.versions), 2)
        self.assertEqual(payload.versions[-1]["markdown"], "fresh text")
        self.assertIsNone(payload.options.active_version_id)

    async def test_metadata_flavor_used_when_entry_has_none(self):
        """Test metadata flavor beats the request flavor."""
        session = self.make_session([
            StreamEvent.metadata('{"flavor": "MONO"}'),
            StreamEvent.chunk('{"id": "1"}'),
        ])

        await drain(session)

        payload = session.get_store_payload()
        self.assertEqual(payload.versions[0]["flavor"], "MONO")
        self.assertEqual(payload.options.metadata, {"flavor": "MONO"})

    async def test_malformed_metadata_is_ignored(self):
        """Test unparseable metadata yields no metadata and no error."""
        session = self.make_session([
            StreamEvent.metadata("{not json"),
            StreamEvent.chunk('{"id": "1"}'),
        ])

        await drain(session)

        payload = session.get_store_payload()
        self.assertEqual(payload.options.metadata, {"flavor": "BILINGUAL"})
        self.assertEqual(payload.options.active_version_id, "1")

    async def test_last_metadata_event_wins(self):
        """Test only the most recent metadata payload is used."""
        session = self.make_session([
            StreamEvent.metadata('{"reviewer": "first"}'),
            StreamEvent.chunk('{"id": "1"}'),
            StreamEvent.metadata('{"reviewer": "second"}'),
        ])

        await drain(session)

        self.assertEqual(session.get_store_payload().options.metadata["reviewer"], "second")

    async def test_versions_embedded_in_entry(self):
        """Test the entry's own versions list is used when metadata has none."""
        entry = {
            "id": "v2",
            "term": "test",
            "versions": [{"id": "v1", "markdown": "one"}, {"id": "v2", "markdown": "two"}],
            "activeVersionId": "v1",
        }
        session = self.make_session([StreamEvent.chunk(json.dumps(entry))])

        await drain(session)

        payload = session.get_store_payload()
        self.assertEqual([v["id"] for v in payload.versions], ["v1", "v2"])
        self.assertEqual(payload.versions[1]["markdown"], "two")
        self.assertEqual(payload.versions[1]["term"], "test")
        self.assertEqual(payload.options.active_version_id, "v1")


class TestFailures(SessionTestCase):
    """Upstream failures and misuse."""

    async def test_upstream_error_propagates_and_blocks_payload(self):
        """Test the transport error is re-raised as is, logged once and no payload exists."""
        error = RuntimeError("upstream failure")
        session = self.make_session([StreamEvent.chunk("partial")], error=error)

        with self.assertRaises(RuntimeError) as ctx:
            await drain(session)

        self.assertIs(ctx.exception, error)
        self.assertEqual(session.state, SessionState.FAILED)
        with self.assertRaisesRegex(SessionNotCompletedError, "has not completed streaming yet"):
            session.get_store_payload()
        errors = self.logged("error")
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0]["userId"], "user-1")
        self.assertEqual(errors[0]["term"], "test")
        self.assertIs(errors[0]["error"], error)
        self.assertEqual(self.logged("end"), [])

    async def test_payload_unavailable_before_streaming(self):
        """Test get_store_payload() on an idle session raises."""
        session = self.make_session([StreamEvent.chunk("x")])

        with self.assertRaises(SessionNotCompletedError):
            session.get_store_payload()

    async def test_payload_unavailable_mid_stream(self):
        """Test get_store_payload() while chunks are still flowing raises."""
        session = self.make_session([StreamEvent.chunk("a"), StreamEvent.chunk("b")])
        stream = session.stream()

        await stream.__anext__()

        self.assertEqual(session.state, SessionState.ACCUMULATING)
        with self.assertRaises(SessionNotCompletedError):
            session.get_store_payload()
        await stream.aclose()

    async def test_stream_is_single_use(self):
        """Test a second stream() pass fails fast and keeps the first result."""
        session = self.make_session([StreamEvent.chunk('{"id": "1"}')])
        await drain(session)

        with self.assertRaises(SessionAlreadyStartedError):
            await drain(session)

        self.assertEqual(session.state, SessionState.COMPLETED)
        self.assertEqual(session.get_store_payload().options.active_version_id, "1")
        self.assertEqual(len(self.word_stream.queries), 1)

    async def test_early_close_leaves_session_failed(self):
        """Test abandoning the stream never produces a payload."""
        session = self.make_session([StreamEvent.chunk("a"), StreamEvent.chunk("b")])
        stream = session.stream()
        await stream.__anext__()

        await stream.aclose()

        self.assertEqual(session.state, SessionState.FAILED)
        with self.assertRaises(SessionNotCompletedError):
            session.get_store_payload()

    async def test_early_close_releases_transport(self):
        """Test closing the stream closes the upstream generator right away."""
        session = self.make_session([StreamEvent.chunk("a"), StreamEvent.chunk("b")])
        stream = session.stream()
        await stream.__anext__()
        self.assertFalse(self.word_stream.closed)

        await stream.aclose()

        self.assertTrue(self.word_stream.closed)
        self.assertEqual(self.word_stream.delivered, 1)

    def test_word_stream_is_required(self):
        """Test constructing a session without a transport raises ValueError."""
        with self.assertRaises(ValueError):
            StreamWordSession(make_request(), word_stream=None)


class TestPacingAndCancellation(SessionTestCase):
    """Pull-based backpressure and signal-driven cancellation."""

    async def test_upstream_is_pulled_one_event_at_a_time(self):
        """Test the transport only advances when the caller pulls."""
        session = self.make_session([StreamEvent.chunk(c) for c in "abc"])
        stream = session.stream()

        first = await stream.__anext__()

        self.assertEqual(first.chunk, "a")
        self.assertEqual(self.word_stream.delivered, 1)
        await stream.__anext__()
        self.assertEqual(self.word_stream.delivered, 2)
        await stream.aclose()

    async def test_signal_cancellation_propagates(self):
        """Test setting the request signal fails the session via the transport."""
        signal = asyncio.Event()
        session = self.make_session(
            [StreamEvent.chunk("a"), StreamEvent.chunk("b")],
            request=make_request(signal=signal),
        )
        stream = session.stream()
        await stream.__anext__()

        signal.set()
        with self.assertRaises(WordStreamCancelledError):
            await stream.__anext__()

        self.assertEqual(session.state, SessionState.FAILED)
        self.assertEqual(len(self.logged("error")), 1)

    async def test_request_fields_forwarded_to_transport(self):
        """Test the transport receives the request fields and a chunk callback."""
        request = make_request(force_new=True, version_id="v9", capture_history=False)
        session = self.make_session([StreamEvent.chunk("x")], request=request)

        await drain(session)

        query = self.word_stream.queries[0]
        self.assertEqual(query.term, "test")
        self.assertEqual(query.user_id, "user-1")
        self.assertEqual(query.token, "token-1")
        self.assertTrue(query.force_new)
        self.assertEqual(query.version_id, "v9")
        self.assertFalse(query.capture_history)
        self.assertIsNotNone(query.on_chunk)


class TestLogging(SessionTestCase):
    """Lifecycle logging through the injected session logger."""

    async def test_start_chunk_end_are_logged(self):
        """Test start, per-chunk and end events carry userId and term."""
        session = self.make_session([StreamEvent.chunk("a"), StreamEvent.chunk("b")])

        await drain(session)

        self.logger.info.assert_any_call(
            "[StreamWordSession] start", {"userId": "user-1", "term": "test"},
        )
        self.assertEqual(self.logged("chunk"), [
            {"userId": "user-1", "term": "test", "chunk": "a"},
            {"userId": "user-1", "term": "test", "chunk": "b"},
        ])
        end = self.logged("end")
        self.assertEqual(len(end), 1)
        self.assertEqual(end[0]["userId"], "user-1")
        self.assertEqual(end[0]["term"], "test")

    async def test_failing_chunk_logger_does_not_break_stream(self):
        """Test a logger raising on chunk events leaves the pipeline intact."""
        def info(tag, context):
            if tag.endswith("chunk"):
                raise ValueError("log sink down")

        self.logger.info.side_effect = info
        session = self.make_session([StreamEvent.chunk('{"id": "1"}')])

        with self.assertLogs("services.stream_accumulator", level="WARNING"):
            chunks = await drain(session)

        self.assertEqual(len(chunks), 1)
        self.assertEqual(session.get_store_payload().options.active_version_id, "1")


class TestDefaults(unittest.IsolatedAsyncioTestCase):
    """Default collaborators."""

    async def test_defaults_use_markdown_normalizer_and_logging_logger(self):
        """Test omitted collaborators fall back to the built-in implementations."""
        word_stream = FakeWordStreamAdapter(events=[StreamEvent.chunk("line one\r\nline two")])
        session = StreamWordSession(make_request(), word_stream=word_stream)

        self.assertIs(session.normalize, normalize_markdown_entity)
        self.assertIsInstance(session.session_logger, LoggingSessionLogger)

        with self.assertLogs("stream_word_session", level="INFO") as logs:
            await drain(session)

        self.assertEqual(
            session.get_store_payload().versions[0]["markdown"], "line one\nline two",
        )
        self.assertIn("[StreamWordSession] end", [r.getMessage() for r in logs.records])

    async def test_custom_normalizer_applies_to_every_version(self):
        """Test the injected normalizer runs on merged and appended versions."""
        def tag(entity):
            return {**entity, "normalized": True}

        metadata = {"versions": [{"id": "v1"}, {"id": "v2", "flavor": "MONO"}]}
        word_stream = FakeWordStreamAdapter(events=[
            StreamEvent.metadata(json.dumps(metadata)),
            StreamEvent.chunk('{"id": "v3"}'),
        ])
        session = StreamWordSession(
            make_request(), word_stream=word_stream, normalize=tag, session_logger=MagicMock(),
        )

        await drain(session)

        versions = session.get_store_payload().versions
        self.assertEqual([v["id"] for v in versions], ["v1", "v2", "v3"])
        self.assertTrue(all(v["normalized"] for v in versions))
        self.assertEqual([v["flavor"] for v in versions], ["BILINGUAL", "MONO", "BILINGUAL"])


if __name__ == '__main__':
    unittest.main()
