"""Tests for the background rule dispatcher."""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from email_rules.mail.messages import EmailMessage
from email_rules.rules.dispatcher import RuleDispatcher
from email_rules.rules.errors import RuleLoadError


def messages(count: int) -> list[EmailMessage]:
    return [EmailMessage(id=f"m{i}", subject=f"Message {i}") for i in range(count)]


class TestRuleDispatcher:
    """Tests for RuleDispatcher."""

    def test_requires_a_worker(self) -> None:
        """Test zero workers is rejected."""
        with pytest.raises(ValueError):
            RuleDispatcher(MagicMock(), workers=0)

    def test_submit_before_start_is_dropped(self) -> None:
        """Test submitting to a stopped dispatcher drops the task."""
        dispatcher = RuleDispatcher(MagicMock())
        assert dispatcher.submit(EmailMessage(id="1"), "user-1") is False
        assert dispatcher.dropped == 1

    @pytest.mark.asyncio
    async def test_processes_every_message(self) -> None:
        """Test all submitted messages are processed and reported."""
        engine = MagicMock()
        engine.process_email.side_effect = lambda email, user_id: email.id
        completed: list[str] = []

        async with RuleDispatcher(engine, workers=3, on_complete=completed.append) as dispatcher:
            for email in messages(10):
                assert dispatcher.submit(email, "user-1") is True

        assert dispatcher.processed == 10
        assert dispatcher.failed == 0
        assert sorted(completed) == sorted(f"m{i}" for i in range(10))
        assert dispatcher.running is False

    @pytest.mark.asyncio
    async def test_submit_does_not_wait_for_processing(self) -> None:
        """Test submit returns while the engine is still blocked."""
        release = threading.Event()
        engine = MagicMock()
        engine.process_email.side_effect = lambda email, user_id: release.wait(5)

        dispatcher = RuleDispatcher(engine, workers=1)
        await dispatcher.start()
        try:
            assert dispatcher.submit(EmailMessage(id="slow"), "user-1") is True
            assert dispatcher.submit(EmailMessage(id="next"), "user-1") is True
            await asyncio.sleep(0.05)
            assert dispatcher.processed == 0
        finally:
            release.set()
            await dispatcher.stop()

        assert dispatcher.processed == 2

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self) -> None:
        """Test crashing and unloadable tasks don't stop the workers."""

        def process(email: EmailMessage, user_id: str) -> str:
            if email.id == "m1":
                raise RuntimeError("boom")
            if email.id == "m2":
                raise RuleLoadError(user_id, "db down")
            return email.id

        engine = MagicMock()
        engine.process_email.side_effect = process

        async with RuleDispatcher(engine, workers=2) as dispatcher:
            for email in messages(5):
                dispatcher.submit(email, "user-1")

        assert dispatcher.failed == 2
        assert dispatcher.processed == 3

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self) -> None:
        """Test an on_complete exception doesn't count as a failure."""
        engine = MagicMock()
        engine.process_email.return_value = "summary"

        def explode(summary: str) -> None:
            raise RuntimeError("callback broke")

        async with RuleDispatcher(engine, on_complete=explode) as dispatcher:
            dispatcher.submit(EmailMessage(id="1"), "user-1")

        assert dispatcher.processed == 1
        assert dispatcher.failed == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops(self) -> None:
        """Test a bounded queue drops instead of blocking the caller."""
        release = threading.Event()
        engine = MagicMock()
        engine.process_email.side_effect = lambda email, user_id: release.wait(5)

        dispatcher = RuleDispatcher(engine, workers=1, max_queue=1)
        await dispatcher.start()
        try:
            dispatcher.submit(EmailMessage(id="a"), "user-1")
            # Let the worker take "a" off the queue
            await asyncio.sleep(0.05)
            assert dispatcher.submit(EmailMessage(id="b"), "user-1") is True
            assert dispatcher.submit(EmailMessage(id="c"), "user-1") is False
            assert dispatcher.dropped == 1
        finally:
            release.set()
            await dispatcher.stop()

        assert dispatcher.processed == 2

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self) -> None:
        """Test starting twice doesn't double the workers."""
        dispatcher = RuleDispatcher(MagicMock(), workers=2)
        await dispatcher.start()
        await dispatcher.start()
        assert len(dispatcher._tasks) == 2
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_restart_after_stop(self) -> None:
        """Test a stopped dispatcher can be started again and keeps processing."""
        engine = MagicMock()
        dispatcher = RuleDispatcher(engine, workers=2)

        async with dispatcher:
            dispatcher.submit(EmailMessage(id="first"), "user-1")
        assert dispatcher.pending == 0

        async with dispatcher:
            dispatcher.submit(EmailMessage(id="second"), "user-1")

        assert dispatcher.processed == 2
        assert dispatcher.running is False
        assert engine.process_email.call_count == 2
