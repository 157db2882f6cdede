"""Tests for progress events and sinks."""

from unittest.mock import MagicMock

from tenant_extractor.pipeline.progress import (
    CallbackSink,
    GuardedSink,
    ListSink,
    ProgressEvent,
    ProgressStatus,
    QueueSink,
)


class TestProgressEvent:
    """Tests for ProgressEvent serialization."""

    def test_extra_keys_are_kept(self) -> None:
        """Test unknown keys travel with the event."""
        event = ProgressEvent(status="custom", tenantId="acme", outputFilename="x.pdf")

        data = event.to_dict()

        assert data == {"status": "custom", "tenantId": "acme", "outputFilename": "x.pdf"}


class TestGuardedSink:
    """Tests for GuardedSink."""

    def test_context_and_camel_case_extras(self) -> None:
        """Test context fields are added and extra names are camelCased."""
        sink = ListSink()
        guarded = GuardedSink(sink, tenant_id="acme")

        guarded.send(ProgressStatus.COMPLETED, filename="a.pdf", output_filename="b.pdf", error=None)

        assert sink.events[0].to_dict() == {
            "status": "completed",
            "tenantId": "acme",
            "filename": "a.pdf",
            "outputFilename": "b.pdf",
        }

    def test_nested_sinks_share_delivery(self) -> None:
        """Test a guarded sink can wrap another one."""
        sink = ListSink()
        outer = GuardedSink(sink)
        inner = GuardedSink(outer, tenant_id="acme")

        inner.send(ProgressStatus.STARTING, total=2)

        assert sink.events[0].tenant_id == "acme"
        assert sink.events[0].total == 2

    def test_failure_disconnects(self) -> None:
        """Test the first delivery error stops all later deliveries."""
        callback = MagicMock(side_effect=[None, BrokenPipeError("gone"), None])
        guarded = GuardedSink(CallbackSink(callback))

        guarded.send(ProgressStatus.STARTING)
        guarded.send(ProgressStatus.ANALYZING)
        guarded.send(ProgressStatus.DONE)

        assert guarded.disconnected is True
        assert callback.call_count == 2

    def test_closed_queue_sink(self) -> None:
        """Test a closed queue sink counts as a disconnected observer."""
        queue_sink = QueueSink()
        guarded = GuardedSink(queue_sink)

        guarded.send(ProgressStatus.CONNECTED)
        queue_sink.close()
        guarded.send(ProgressStatus.DONE)

        assert queue_sink.queue.qsize() == 1
        assert queue_sink.queue.get_nowait().status == ProgressStatus.CONNECTED
        assert guarded.disconnected is True
