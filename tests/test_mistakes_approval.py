"""Tests for MistakeTracker and ApprovalGate."""

import asyncio
import sys
import os
import pytest

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tooluse.approval import ApprovalGate
from tooluse.errors import ApprovalUnavailableError
from tooluse.mistakes import MistakeTracker
from tooluse.models import AskResponse, AskResponseKind, ImageBlock, TextBlock
from fakes import FakePrompt, no, reply, yes


class TestMistakeTracker:

    def test_increment_and_reset(self):
        tracker = MistakeTracker(limit=3)
        assert tracker.record_mistake("read_file") == 1
        assert tracker.record_mistake("read_file") == 2
        assert not tracker.limit_reached
        tracker.record_mistake()
        assert tracker.limit_reached
        tracker.reset()
        assert tracker.count == 0

    def test_per_path_warning_threshold(self):
        tracker = MistakeTracker()
        tracker.record_path_failure("a.py")
        assert not tracker.should_warn("a.py")
        tracker.record_path_failure("a.py")
        assert tracker.should_warn("a.py")
        assert not tracker.should_warn("b.py")
        tracker.reset_path("a.py")
        assert tracker.path_count("a.py") == 0

    def test_reset_keeps_path_counts(self):
        tracker = MistakeTracker()
        tracker.record_path_failure("a.py")
        tracker.record_mistake()
        tracker.reset()
        assert tracker.path_count("a.py") == 1


class TestApprovalGate:

    def test_approved(self):
        prompt = FakePrompt([yes()])
        result = asyncio.run(ApprovalGate(prompt).ask("tool", "{}"))
        assert result.approved
        assert not result.has_feedback
        assert ApprovalGate.approval_feedback(result) is None

    def test_denied_without_feedback(self):
        prompt = FakePrompt([no()])
        gate = ApprovalGate(prompt)
        result = asyncio.run(gate.ask("command", "rm -rf build"))
        assert not result.approved
        assert gate.denied_count == 1
        assert ApprovalGate.rejection_result(result) == "The user denied this operation."

    def test_denied_with_feedback_and_images(self):
        prompt = FakePrompt([AskResponse(response=AskResponseKind.NO, text="use a temp dir",
                                         images=["data:image/png;base64,AAAA"])])
        result = asyncio.run(ApprovalGate(prompt).ask("command", "ls"))
        rejection = ApprovalGate.rejection_result(result)
        assert isinstance(rejection, list)
        assert isinstance(rejection[0], TextBlock)
        assert "use a temp dir" in rejection[0].text
        assert isinstance(rejection[1], ImageBlock)
        assert prompt.said("user_feedback") == ["use a temp dir"]

    def test_message_reply_counts_as_denial(self):
        result = asyncio.run(ApprovalGate(FakePrompt([reply("not yet")])).ask("tool", "{}"))
        assert not result.approved
        assert result.feedback_text == "not yet"

    def test_approval_with_feedback(self):
        result = asyncio.run(ApprovalGate(FakePrompt([yes("also add tests")])).ask("tool", "{}"))
        assert result.approved
        assert "also add tests" in ApprovalGate.approval_feedback(result)

    def test_auto_approve_skips_prompt(self):
        prompt = FakePrompt([no()])
        result = asyncio.run(ApprovalGate(prompt, ["read"]).ask("tool", "{}", category="read"))
        assert result.approved
        assert prompt.asks == []

    def test_unanswered_prompt_raises(self):
        class SilentPrompt(FakePrompt):
            async def ask(self, kind, text="", partial=False):
                return None

        with pytest.raises(ApprovalUnavailableError):
            asyncio.run(ApprovalGate(SilentPrompt()).ask("tool", "{}"))
