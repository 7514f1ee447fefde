"""Tests for behavior shared by all tool syntaxes (codeagent.parsing)."""

from __future__ import annotations

import json

import pytest

from codeagent.errors import ToolParseError
from codeagent.parsing import (
    CaretParser,
    NativeParser,
    ParallelSpawnFilter,
    SingleToolFilter,
    XmlParser,
    convert_params,
    create_parser,
    tool_id,
)
from codeagent.parsing.base import format_scalar
from codeagent.types.config import ToolSyntax
from codeagent.types.providers import StreamEnd, TextDelta, ToolCallDelta
from codeagent.types.tools import ToolDef, ToolParam, ToolRequest


def _parse(syntax: ToolSyntax, registry, request: ToolRequest) -> ToolRequest:
    parser = create_parser(syntax, registry, request_id=1)
    if syntax is ToolSyntax.NATIVE:
        chunks = [ToolCallDelta(0, None, request.name, json.dumps(request.input))]
    else:
        chunks = [TextDelta(parser.render_request(request))]
    for chunk in [*chunks, StreamEnd("tool_use")]:
        parser.process_chunk(chunk)
    [parsed] = parser.finalize()
    return parsed


class TestCreateParser:
    @pytest.mark.parametrize(
        ("syntax", "cls"),
        [(ToolSyntax.NATIVE, NativeParser), (ToolSyntax.XML, XmlParser), (ToolSyntax.CARET, CaretParser)],
    )
    def test_selects_parser(self, syntax, cls):
        parser = create_parser(syntax, request_id=4)
        assert isinstance(parser, cls)
        assert parser.syntax is syntax
        assert parser.request_id == 4

    def test_tool_ids(self):
        assert tool_id(12, 1) == "tool-12-1"


class TestCrossSyntaxEquivalence:
    @pytest.mark.parametrize("syntax", list(ToolSyntax))
    def test_same_request_in_every_syntax(self, syntax, registry):
        request = ToolRequest(
            id="x",
            name="read_files",
            input={"paths": ["src/a.py", "src/b.py"], "limit": 40, "verbose": True},
        )
        parsed = _parse(syntax, registry, request)
        assert parsed.name == "read_files"
        assert parsed.input == request.input
        assert parsed.id == "tool-1-1"

    @pytest.mark.parametrize("syntax", list(ToolSyntax))
    def test_multiline_content_in_every_syntax(self, syntax, registry):
        content = "def f(x):\n    return x < 3\n\n# --- done ---"
        request = ToolRequest(id="x", name="write_file", input={"path": "f.py", "content": content})
        assert _parse(syntax, registry, request).input == request.input


class TestConvertParams:
    def _definition(self) -> ToolDef:
        return ToolDef(
            name="t",
            description="",
            parameters=(
                ToolParam(name="paths", type="array", description=""),
                ToolParam(name="entries", type="array", description="", required=False),
                ToolParam(name="count", type="integer", description="", required=False),
                ToolParam(name="ratio", type="number", description="", required=False),
                ToolParam(name="options", type="object", description="", required=False),
                ToolParam(
                    name="ids", type="array", description="", required=False,
                    items={"type": "integer"},
                ),
            ),
        )

    def test_array_aliases_merge(self):
        result = convert_params(
            "t", {"paths": ["a"], "path": ["b"], "entry": ["e1"]}, self._definition(),
        )
        assert result == {"paths": ["a", "b"], "entries": ["e1"]}

    def test_scalar_types(self):
        result = convert_params(
            "t",
            {"count": ["3"], "ratio": ["0.5"], "options": ['{"a": 1}'], "ids": ["1", "2"]},
            self._definition(),
        )
        assert result == {"count": 3, "ratio": 0.5, "options": {"a": 1}, "ids": [1, 2]}

    def test_repeated_scalar_keeps_first(self):
        assert convert_params("t", {"count": ["1", "2"]}, self._definition()) == {"count": 1}

    def test_object_must_be_object(self):
        with pytest.raises(ToolParseError, match="must be a JSON object"):
            convert_params("t", {"options": ["[1]"]}, self._definition())

    def test_invalid_boolean(self, registry):
        with pytest.raises(ToolParseError, match="Invalid boolean") as excinfo:
            convert_params("read_files", {"verbose": ["maybe"]}, registry.definition("read_files"))
        assert excinfo.value.tool_name == "read_files"

    def test_format_scalar(self):
        assert format_scalar(True) == "true"
        assert format_scalar(2) == "2"
        assert format_scalar(1.5) == "1.5"
        assert format_scalar("x") == "x"
        assert format_scalar({"a": 1}) == '{"a": 1}'


class TestFilters:
    def test_single_tool_filter(self):
        f = SingleToolFilter()
        request = ToolRequest("a", "echo")
        assert f.allow_tool("echo", 0, [])
        assert not f.allow_tool("echo", 1, [request])
        assert not f.allow_content_after(request)

    def test_parallel_spawn_filter(self, registry):
        f = ParallelSpawnFilter(registry)
        spawn = ToolRequest("a", "spawn_agent", {"instructions": "x"})
        writable = ToolRequest("b", "spawn_agent", {"instructions": "x", "mode": "default"})
        echo = ToolRequest("c", "echo", {"text": "x"})

        assert f.is_read_only_spawn(spawn)
        assert not f.is_read_only_spawn(writable)
        assert f.allow_tool("spawn_agent", 1, [spawn])
        assert not f.allow_tool("echo", 1, [spawn])
        assert not f.allow_tool("spawn_agent", 1, [echo])
        assert not f.allow_tool("spawn_agent", 1, [writable])
        assert f.allow_content_after(spawn)
        assert not f.allow_content_after(echo)
