"""Tests for codeagent.parsing.caret."""

from __future__ import annotations

import pytest

from codeagent.errors import ToolParseError
from codeagent.parsing import CaretParser, create_parser
from codeagent.types.config import ToolSyntax
from codeagent.types.fragments import (
    TextFragment,
    ToolEndFragment,
    ToolNameFragment,
    ToolParameterFragment,
    merge_fragments,
)
from codeagent.types.messages import Message, MessageRole, TextBlock, ToolUseBlock
from codeagent.types.providers import StreamEnd, TextDelta
from codeagent.types.tools import ToolRequest

READ_TWO = (
    "Reading.\n"
    "^^^read_files\n"
    "paths: [\n"
    "a.py\n"
    "b.py\n"
    "]\n"
    "limit: 20\n"
    "^^^\n"
)

WRITE = (
    "^^^write_file\n"
    "path: a.py\n"
    "content ---\n"
    "def f():\n"
    "    return 1\n"
    "--- content\n"
    "^^^"
)


def _run(parser, *pieces: str, stop_reason: str = "end_turn") -> list:
    fragments = []
    for piece in pieces:
        fragments.extend(parser.process_chunk(TextDelta(piece)))
    fragments.extend(parser.process_chunk(StreamEnd(stop_reason)))
    return fragments


class TestCaretParsing:
    def test_array_and_scalar_parameters(self, registry):
        parser = CaretParser(registry, request_id=4)
        fragments = _run(parser, READ_TWO)

        assert fragments == [
            TextFragment("Reading.\n"),
            ToolNameFragment("read_files", "tool-4-1"),
            ToolParameterFragment("paths", "a.py", "tool-4-1"),
            ToolParameterFragment("paths", "b.py", "tool-4-1"),
            ToolParameterFragment("limit", "20", "tool-4-1"),
            ToolEndFragment("tool-4-1"),
        ]
        [request] = parser.finalize()
        assert request.input == {"paths": ["a.py", "b.py"], "limit": 20}
        assert request.start_offset == len("Reading.\n")
        assert request.end_offset == len(READ_TWO)

    def test_multiline_value_kept_verbatim(self, registry):
        parser = CaretParser(registry)
        _run(parser, WRITE)
        [request] = parser.finalize()
        assert request.input == {"path": "a.py", "content": "def f():\n    return 1"}

    def test_split_across_chunks(self, registry):
        whole = CaretParser(registry)
        expected = merge_fragments(_run(whole, READ_TWO))

        split = CaretParser(registry)
        fragments = _run(split, *READ_TWO)

        assert merge_fragments(fragments) == expected
        assert split.finalize() == whole.finalize()

    def test_fence_must_start_a_line(self):
        text = "use ^^^echo inline\n^^^ not a tool\n"
        parser = CaretParser()
        fragments = _run(parser, text)
        assert merge_fragments(fragments) == [TextFragment(text)]
        assert parser.finalize() == []

    def test_empty_array(self, registry):
        parser = CaretParser(registry)
        _run(parser, "^^^read_files\npaths: [\n]\n^^^\n")
        assert parser.finalize()[0].input == {"paths": []}

    def test_empty_scalar(self):
        parser = CaretParser()
        _run(parser, "^^^tool\nnote:\n^^^\n")
        assert parser.finalize()[0].input == {"note": ""}

    def test_extract_merges_line_fragments(self, registry):
        text = "Two lines\nof text.\n^^^echo\ntext: hi\n^^^\n"
        message = Message(
            MessageRole.ASSISTANT,
            (TextBlock(text), ToolUseBlock("tool-4-1", "echo", {"text": "hi"})),
            request_id=4,
        )
        fragments, requests = CaretParser(registry).extract_from_complete_message(message)

        assert fragments == [
            TextFragment("Two lines\nof text.\n"),
            ToolNameFragment("echo", "tool-4-1"),
            ToolParameterFragment("text", "hi", "tool-4-1"),
            ToolEndFragment("tool-4-1"),
        ]
        assert [r.input for r in requests] == [{"text": "hi"}]


class TestCaretErrors:
    def test_unexpected_line(self, registry):
        parser = CaretParser(registry)
        _run(parser, "^^^echo\nthis is not a parameter\n^^^\n")
        with pytest.raises(ToolParseError, match="Unexpected line"):
            parser.finalize()

    def test_unknown_tool(self, registry):
        parser = CaretParser(registry)
        _run(parser, "^^^nope\nx: 1\n^^^\n")
        with pytest.raises(ToolParseError, match="Unknown tool: nope"):
            parser.finalize()

    def test_truncated_tool_is_discarded(self, registry):
        parser = CaretParser(registry)
        fragments = _run(parser, "Okay.\n^^^echo\ntext: hel", stop_reason="max_tokens")

        assert not any(isinstance(f, ToolEndFragment) for f in fragments)
        assert parser.finalize() == []
        assert parser.content_blocks() == (TextBlock("Okay.\n"),)

    def test_unterminated_multiline_is_discarded(self, registry):
        parser = CaretParser(registry)
        _run(parser, "^^^write_file\npath: a\ncontent ---\nabc\n")
        assert parser.finalize() == []

    @pytest.mark.parametrize("tail", ["^^", "te", "text: partial", "content ---"])
    def test_cut_on_last_line_is_discarded(self, registry, tail):
        parser = CaretParser(registry)
        fragments = _run(parser, "Reading.\n^^^echo\ntext: hi\n" + tail, stop_reason="max_tokens")

        assert fragments[-1] == ToolParameterFragment("text", "hi", "tool-0-1")
        assert parser.finalize() == []
        assert parser.content_blocks() == (TextBlock("Reading.\n"),)

    def test_closing_fence_without_newline_still_closes(self, registry):
        parser = CaretParser(registry)
        _run(parser, "^^^echo\ntext: hi\n^^^")
        assert [r.input for r in parser.finalize()] == [{"text": "hi"}]


class TestCaretToolLimits:
    def test_second_tool_stops_parsing(self, registry):
        first = "^^^echo\ntext: one\n^^^\n"
        parser = CaretParser(registry)
        _run(parser, first + "after\n^^^echo\ntext: two\n^^^\n")

        assert parser.stop_requested
        assert [r.input for r in parser.finalize()] == [{"text": "one"}]
        assert parser.content_blocks(include_tools=False) == (TextBlock(first),)

    def test_nested_start_inside_open_tool_stops(self, registry):
        parser = CaretParser(registry)
        _run(parser, "Hi\n^^^echo\ntext: one\n^^^echo\ntext: two\n^^^\n")
        assert parser.stop_requested
        assert parser.finalize() == []
        assert parser.content_blocks() == (TextBlock("Hi\n"),)

    def test_read_only_spawns_may_chain(self, registry):
        text = (
            "^^^spawn_agent\ninstructions: a\n^^^\n"
            "^^^spawn_agent\ninstructions: b\n^^^\n"
        )
        parser = create_parser(ToolSyntax.CARET, registry, request_id=9)
        _run(parser, text)
        assert [r.id for r in parser.finalize()] == ["tool-9-1", "tool-9-2"]


class TestCaretRendering:
    def test_render_simple_values(self):
        markup = CaretParser().render_request(
            ToolRequest(id="x", name="read_files", input={"paths": ["a", "b"], "verbose": True}),
        )
        assert markup == "^^^read_files\npaths: [\na\nb\n]\nverbose: true\n^^^"

    def test_render_multiline_and_reparse(self, registry):
        request = ToolRequest(
            id="x", name="write_file", input={"path": "a.py", "content": "def f():\n    return 1"},
        )
        markup = CaretParser().render_request(request)
        assert markup == WRITE

        parser = CaretParser(registry)
        _run(parser, markup)
        assert parser.finalize()[0].input == request.input

    def test_render_items_that_need_blocks(self):
        markup = CaretParser().render_request(
            ToolRequest(id="x", name="t", input={"items": ["one\ntwo", "]"]}),
        )
        assert markup == "^^^t\nitems ---\none\ntwo\n--- items\nitems ---\n]\n--- items\n^^^"

    def test_documentation(self, registry):
        parser = CaretParser(registry)
        assert "^^^tool_name" in parser.syntax_documentation()
        docs = parser.tool_documentation(registry.definitions())
        assert "^^^echo\ntext: text value\n^^^" in docs
