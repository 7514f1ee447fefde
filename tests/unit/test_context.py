"""Tests for history, compaction decisions and request building."""

from __future__ import annotations

from codeagent.core.context import compaction_message, render_compaction, should_compact
from codeagent.core.history import History
from codeagent.core.request import build_request, format_tool_result
from codeagent.parsing import NativeParser, XmlParser
from codeagent.types.config import ContextWindowConfig
from codeagent.types.messages import (
    ContextCompactionBlock,
    Message,
    MessageRole,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
    user_message,
)
from codeagent.types.tools import ToolExecution, ToolRequest, ToolStatus


def _assistant(text: str, usage: Usage | None = None, request_id: int | None = None) -> Message:
    return Message(MessageRole.ASSISTANT, (TextBlock(text),), usage=usage, request_id=request_id)


def _compacted(history: History, summary: str = "summary") -> None:
    history.append(compaction_message(history, summary, history.current_context_size()))


class TestHistory:
    def test_active_slice_starts_at_last_compaction(self):
        history = History()
        history.append(user_message("one"))
        history.append(_assistant("two"))
        assert history.active_start() == 0

        _compacted(history, "first")
        history.append(user_message("three"))
        _compacted(history, "second")
        history.append(user_message("four"))

        assert len(history) == 6
        assert history.active_start() == 4
        assert [m.text for m in history.active_slice()[1:]] == ["four"]
        assert history.count_compactions() == 2

    def test_nothing_is_removed(self):
        history = History([user_message("a"), _assistant("b")])
        _compacted(history)
        assert len(history.messages) == 3

    def test_context_size_from_latest_assistant_in_slice(self):
        history = History()
        history.append(_assistant("a", Usage(100, 10, 20)))
        history.append(user_message("b"))
        assert history.current_context_size() == 120

        _compacted(history)
        assert history.current_context_size() == 0

    def test_next_request_id(self):
        history = History()
        assert history.next_request_id() == 1
        history.append(_assistant("a", request_id=4))
        history.append(user_message("b"))
        assert history.next_request_id() == 5

    def test_last_assistant_text(self):
        history = History([user_message("q")])
        assert history.last_assistant_text() == ""
        history.append(_assistant("answer"))
        assert history.last_assistant_text() == "answer"

    def test_record_execution(self):
        history = History()
        execution = ToolExecution(ToolRequest("t", "echo"), ToolStatus.SUCCESS, "ok")
        history.record_execution(execution)
        assert history.executions == (execution,)


class TestReviseToolInput:
    def test_native_message_replaced_not_mutated(self):
        original = Message(
            MessageRole.ASSISTANT,
            (TextBlock("Writing."), ToolUseBlock("t1", "write_file", {"path": "./a.py"})),
        )
        history = History([user_message("go"), original])

        index = history.revise_tool_input("t1", {"path": "a.py"})

        assert index == 1
        assert history.messages[1] is not original
        assert history.messages[1].tool_uses()[0].input == {"path": "a.py"}
        assert history.messages[1].text == "Writing."
        assert original.tool_uses()[0].input == {"path": "./a.py"}

    def test_text_span_is_rewritten(self):
        parser = XmlParser()
        old = ToolRequest("tool-1-1", "echo", {"text": "a"})
        prefix = "Run it:\n"
        markup = parser.render_request(old)
        text = prefix + markup + "\nDone."
        history = History([
            Message(MessageRole.ASSISTANT, (TextBlock(text), ToolUseBlock(old.id, old.name, old.input))),
        ])

        history.revise_tool_input(
            "tool-1-1", {"text": "b"},
            render=parser.render_request, span=(len(prefix), len(prefix) + len(markup)),
        )

        revised = history.messages[0]
        expected_markup = parser.render_request(ToolRequest("tool-1-1", "echo", {"text": "b"}))
        assert revised.text == prefix + expected_markup + "\nDone."
        assert revised.tool_uses()[0].input == {"text": "b"}

    def test_unknown_id(self):
        assert History([user_message("x")]).revise_tool_input("nope", {}) is None


class TestCompaction:
    def test_threshold_includes_cached_tokens(self):
        config = ContextWindowConfig(limit=200_000, threshold=0.85)
        history = History([user_message("q"), _assistant("a", Usage(150_000, 500, 25_000))])
        assert should_compact(history, config)

        history = History([user_message("q"), _assistant("a", Usage(100_000, 500, 0))])
        assert not should_compact(history, config)

    def test_exactly_at_threshold(self):
        history = History([_assistant("a", Usage(input_tokens=850))])
        assert should_compact(history, ContextWindowConfig(limit=1000, threshold=0.85))

    def test_disabled_or_unknown_limit(self):
        history = History([_assistant("a", Usage(10_000))])
        assert not should_compact(history, ContextWindowConfig(limit=100, enabled=False))
        assert not should_compact(history, ContextWindowConfig(limit=None))

    def test_no_usage_yet(self):
        assert not should_compact(History([user_message("q")]), ContextWindowConfig(limit=1))

    def test_compaction_message(self):
        history = History([user_message("a"), _assistant("b"), user_message("c")])
        message = compaction_message(history, "the summary", 9000)
        block = message.compaction

        assert message.role is MessageRole.USER
        assert (block.sequence_number, block.messages_archived, block.context_size_before) == (1, 3, 9000)

        history.append(message)
        history.append(user_message("d"))
        second = compaction_message(history, "again", 100).compaction
        assert (second.sequence_number, second.messages_archived) == (2, 2)

    def test_render_compaction(self):
        text = render_compaction(ContextCompactionBlock(3, "Did things.", 12, 100))
        assert text.startswith("[Context compacted (#3): 12 earlier messages")
        assert text.endswith("Did things.")


class TestBuildRequest:
    def _history(self) -> list[Message]:
        return [
            Message(MessageRole.USER, (ContextCompactionBlock(1, "sum", 2, 10),)),
            _assistant("Calling."),
            Message(
                MessageRole.ASSISTANT,
                (TextBlock("<tool:echo>...</tool:echo>"), ToolUseBlock("t1", "echo", {"text": "x"})),
            ),
            Message(MessageRole.USER, (ToolResultBlock("t1", "x"),)),
        ]

    def test_native_keeps_structured_blocks(self, registry):
        request = build_request(
            self._history(), parser=NativeParser(registry, request_id=6),
            definitions=registry.definitions(), system="SYS", max_tokens=100,
        )
        assert request.request_id == 6
        assert request.system == "SYS"
        assert {t.name for t in request.tools} == {"echo", "read_files", "write_file", "spawn_agent"}
        assert request.messages[0].blocks[0] == TextBlock(render_compaction(ContextCompactionBlock(1, "sum", 2, 10)))
        assert isinstance(request.messages[2].blocks[1], ToolUseBlock)
        assert isinstance(request.messages[3].blocks[0], ToolResultBlock)

    def test_text_syntax_uses_plain_text(self, registry):
        request = build_request(
            self._history(), parser=XmlParser(registry), definitions=registry.definitions(),
            system="SYS", max_tokens=100,
        )
        assert request.tools == ()
        assert request.system.startswith("SYS\n\n")
        assert "# Tools" in request.system
        assert request.messages[2].blocks == (TextBlock("<tool:echo>...</tool:echo>"),)
        assert request.messages[3].blocks == (
            TextBlock(format_tool_result(ToolResultBlock("t1", "x"))),
        )

    def test_without_tools(self, registry):
        request = build_request(
            self._history(), parser=XmlParser(registry), definitions=registry.definitions(),
            system="SYS", max_tokens=100, include_tools=False,
        )
        assert request.tools == ()
        assert "# Tools" not in request.system

    def test_format_tool_result(self):
        assert format_tool_result(ToolResultBlock("t", "bad", is_error=True)) == (
            "Tool result for t (error):\nbad"
        )
