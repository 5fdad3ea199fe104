"""Tests for exploration, command, browser, MCP and task-flow handlers."""

import asyncio
import json
import sys
import os
import tempfile
import pytest

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tooluse.handlers.interaction_handlers import parse_suggestions
from tooluse.handlers.mcp_handlers import format_tool_response
from tooluse.models import ImageBlock, McpToolCallResponse
from tooluse.task import EMPTY_RESULT, TaskState
from fakes import invocation, last_result, make_task, no, reply, write, yes


def run(task, *invocations):
    async def go():
        for inv in invocations:
            await task.handle_invocation(inv)
    asyncio.run(go())


# ============================================================
# Exploration
# ============================================================

class TestExploration:

    def test_list_files(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "a.py", "")
            write(ws, "src/b.py", "")
            task = make_task(ws)
            run(task, invocation("list_files", path=".", recursive="true"))
            assert last_result(task) == "a.py\nsrc/\nsrc/b.py"
            payload = json.loads(task.prompt.complete_asks("tool")[0][1])
            assert payload["tool"] == "listFilesRecursive"

    def test_search_files(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "a.py", "x = 1\ny = 2\n")
            task = make_task(ws)
            run(task, invocation("search_files", path=".", regex=r"y = \d", file_pattern="*.py"))
            assert last_result(task).startswith("Found 1 result.")
            assert task.pending_text().startswith("[search_files for 'y = \\d' in '*.py'] Result:")

    def test_search_invalid_regex(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("search_files", path=".", regex="("))
            assert "Invalid regex '('" in last_result(task)
            assert task.prompt.complete_asks("tool") == []

    def test_code_definitions_for_file(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "m.py", "def run():\n    pass\n")
            task = make_task(ws)
            run(task, invocation("list_code_definition_names", path="m.py"))
            assert last_result(task) == "# m.py\n1--2 | def run():"

    def test_code_definitions_missing_path(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("list_code_definition_names", path="nope"))
            assert "does not exist or cannot be accessed" in last_result(task)


# ============================================================
# execute_command
# ============================================================

class TestExecuteCommand:

    def test_runs_after_approval(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            task.services.processes.output = "hi\nthere"
            run(task, invocation("execute_command", command="echo hi"))
            assert last_result(task) == (
                f"Command executed in terminal within working directory '{task.cwd}'. "
                "Exit code: 0\nOutput:\nhi\nthere")
            streamed = [s for s in task.prompt.says if s[0] == "command_output"]
            assert [s[1] for s in streamed] == ["hi", "there"]
            assert task.prompt.complete_asks("command")[0][1] == "echo hi"

    def test_denied_does_not_run(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, answers=[no()])
            run(task, invocation("execute_command", command="rm -rf build"))
            assert task.services.processes.calls == []
            assert last_result(task) == "The user denied this operation."

    def test_blocked_by_ignore(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, ".tooluseignore", "*.env\n")
            task = make_task(ws)
            run(task, invocation("execute_command", command="cat prod.env"))
            assert "prod.env is blocked" in last_result(task)
            assert task.services.processes.calls == []

    def test_cancelled_sets_rejection(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            task.services.processes.cancelled = True
            run(task, invocation("execute_command", command="sleep 100"))
            assert last_result(task).startswith("Command was cancelled by the user")
            assert task.did_reject_tool

    def test_bad_cwd(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("execute_command", command="ls", cwd="missing"))
            assert "does not exist" in last_result(task)
            assert task.services.processes.calls == []

    def test_auto_approve_execute(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, auto_approve=["execute"])
            run(task, invocation("execute_command", command="ls"))
            assert task.prompt.complete_asks() == []
            assert len(task.services.processes.calls) == 1


# ============================================================
# browser_action
# ============================================================

class TestBrowserAction:

    def test_launch_returns_screenshot(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("browser_action", action="launch", url="http://localhost:3000"))
            assert task.services.browser.actions == [("launch", "http://localhost:3000")]
            assert "Console logs:\n[log] ready" in last_result(task)
            assert isinstance(task.user_content[-1], ImageBlock)
            assert task.prompt.complete_asks("browser_action_launch")

    def test_click_then_close(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task,
                invocation("browser_action", action="launch", url="http://x"),
                invocation("browser_action", action="click", coordinate="10,20"),
                invocation("browser_action", action="close"))
            assert [a[0] for a in task.services.browser.actions] == ["launch", "click", "close"]
            assert last_result(task).startswith("The browser has been closed.")

    def test_invalid_action(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("browser_action", action="hover"))
            assert "Invalid browser action 'hover'" in last_result(task)

    def test_click_requires_coordinate(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("browser_action", action="click"))
            assert "Missing value for required parameter 'coordinate'" in last_result(task)


# ============================================================
# MCP
# ============================================================

class TestMcp:

    def test_use_tool(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("use_mcp_tool", server_name="calc", tool_name="add",
                                 arguments='{"a": 1, "b": 41}'))
            assert task.services.mcp.calls == [("call_tool", "calc", "add", {"a": 1, "b": 41})]
            assert last_result(task) == "42"
            assert task.prompt.complete_asks("use_mcp_server")

    def test_invalid_arguments(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("use_mcp_tool", server_name="calc", tool_name="add", arguments="{"))
            assert "Invalid JSON argument used with calc for add." in last_result(task)
            assert task.services.mcp.calls == []

    def test_access_resource(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("access_mcp_resource", server_name="docs", uri="res://a"))
            assert last_result(task) == "body"

    def test_format_error_response(self):
        response = McpToolCallResponse.model_validate({"content": [], "isError": True})
        assert format_tool_response(response) == "Error:\n(No response)"


# ============================================================
# Task flow
# ============================================================

class TestFollowup:

    def test_parse_suggestions(self):
        assert parse_suggestions("<suggest>a</suggest>\n<suggest> b </suggest>") == ["a", "b"]
        with pytest.raises(ValueError):
            parse_suggestions("<suggest>a")

    def test_answer_wrapped(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, answers=[reply("use sqlite")])
            run(task, invocation("ask_followup_question", question="Which db?",
                                 follow_up="<suggest>sqlite</suggest><suggest>postgres</suggest>"))
            asked = json.loads(task.prompt.complete_asks("followup")[0][1])
            assert asked == {"question": "Which db?", "suggest": ["sqlite", "postgres"]}
            assert last_result(task) == "<answer>\nuse sqlite\n</answer>"

    def test_bad_follow_up(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("ask_followup_question", question="?", follow_up="<suggest>x"))
            assert "Invalid follow_up XML format" in last_result(task)
            assert task.prompt.complete_asks("followup") == []


class TestAttemptCompletion:

    def test_accepted(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, answers=[yes()])
            run(task, invocation("attempt_completion", result="All done"))
            assert task.state == TaskState.COMPLETED
            assert task.prompt.said("completion_result") == ["All done"]
            assert last_result(task) == EMPTY_RESULT

    def test_feedback_continues_task(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, answers=[reply("add docs")])
            run(task, invocation("attempt_completion", result="Done"))
            assert task.state == TaskState.RUNNING
            assert "<feedback>\nadd docs\n</feedback>" in last_result(task)

    def test_command_output_included_with_feedback(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, answers=[yes(), reply("looks off")])
            task.services.processes.output = "served"
            run(task, invocation("attempt_completion", result="Done", command="open index.html"))
            out = last_result(task)
            assert "Output:\nserved" in out
            assert "<feedback>\nlooks off\n</feedback>" in out

    def test_command_denied(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, answers=[no()])
            run(task, invocation("attempt_completion", result="Done", command="open index.html"))
            assert task.services.processes.calls == []
            assert task.state == TaskState.RUNNING
            assert last_result(task) == "The user denied this operation."


class TestSwitchMode:

    def test_switch(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("switch_mode", mode_slug="architect", reason="planning first"))
            assert task.modes.current_slug == "architect"
            assert last_result(task) == (
                "Successfully switched from Code mode to Architect mode because: planning first.")

    def test_already_in_mode(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("switch_mode", mode_slug="code"))
            assert last_result(task) == "Already in Code mode."
            assert task.prompt.complete_asks() == []

    def test_invalid_mode(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("switch_mode", mode_slug="nope"))
            assert "Invalid mode: nope" in last_result(task)
            assert task.modes.current_slug == "code"

    def test_denied_keeps_mode(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, answers=[no()])
            run(task, invocation("switch_mode", mode_slug="ask"))
            assert task.modes.current_slug == "code"


class TestFetchInstructions:

    def test_create_mode_lists_modes(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws, custom_modes=[{"slug": "docs", "name": "Docs Writer"}])
            run(task, invocation("fetch_instructions", task="create_mode"))
            out = last_result(task)
            assert "- code: Code" in out
            assert "- docs: Docs Writer" in out

    def test_unknown_task(self):
        with tempfile.TemporaryDirectory() as ws:
            task = make_task(ws)
            run(task, invocation("fetch_instructions", task="bake_cake"))
            assert "Available: create_mcp_server, create_mode" in last_result(task)
