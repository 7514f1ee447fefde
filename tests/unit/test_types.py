"""Tests for the shared type definitions."""

from __future__ import annotations

import pytest

from codeagent.errors import ProviderError, RateLimitError, ToolParseError
from codeagent.types.config import ContextWindowConfig, LoopConfig, ToolSyntax
from codeagent.types.fragments import (
    ReasoningSummaryFragment,
    TextFragment,
    ThinkingFragment,
    ToolNameFragment,
    merge_fragments,
)
from codeagent.types.messages import (
    ContextCompactionBlock,
    Message,
    MessageRole,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
    block_from_dict,
    message_from_dict,
    message_to_dict,
    user_message,
)
from codeagent.types.providers import ModelInfo
from codeagent.types.tools import (
    ToolExecution,
    ToolOutcome,
    ToolRequest,
    ToolScope,
    ToolStatus,
)


class TestMessages:
    def test_string_content(self):
        msg = user_message("Hello")
        assert msg.role is MessageRole.USER
        assert msg.text == "Hello"
        assert msg.blocks == (TextBlock("Hello"),)
        assert user_message("").blocks == ()

    def test_block_content(self):
        msg = Message(
            role=MessageRole.ASSISTANT,
            content=(
                ThinkingBlock("hmm"),
                TextBlock("One"),
                TextBlock(""),
                TextBlock("Two"),
                ToolUseBlock("t1", "echo", {"text": "x"}),
            ),
        )
        assert msg.text == "One\n\nTwo"
        assert [b.id for b in msg.tool_uses()] == ["t1"]
        assert msg.compaction is None

    def test_compaction_must_lead(self):
        block = ContextCompactionBlock(1, "summary", 4, 1000)
        assert Message(MessageRole.USER, (block,)).compaction is block
        assert Message(MessageRole.USER, (TextBlock("x"), block)).compaction is None

    def test_serialization_preserves_every_block(self):
        msg = Message(
            role=MessageRole.ASSISTANT,
            content=(
                ThinkingBlock("hmm", "sig"),
                RedactedThinkingBlock(("a", "b"), "opaque"),
                TextBlock("text"),
                ToolUseBlock("t1", "read_files", {"paths": ["a"]}),
                ToolResultBlock("t1", "done", is_error=True),
                ContextCompactionBlock(2, "sum", 7, 5000),
            ),
            usage=Usage(10, 20, 30),
            request_id=4,
        )
        data = message_to_dict(msg)
        assert data["usage"] == {"input_tokens": 10, "output_tokens": 20, "cached_input_tokens": 30}
        assert message_from_dict(data) == msg

    def test_plain_string_message_serializes_as_string(self):
        data = message_to_dict(user_message("hi"))
        assert data == {"role": "user", "content": "hi"}

    def test_unknown_block_type(self):
        with pytest.raises(ValueError, match="Unknown content block type"):
            block_from_dict({"type": "image"})


class TestUsage:
    def test_context_size_counts_cached_tokens(self):
        assert Usage(input_tokens=150_000, output_tokens=900, cached_input_tokens=25_000).context_size == 175_000
        assert Usage().context_size == 0


class TestFragments:
    def test_merge_adjacent(self):
        merged = merge_fragments([
            TextFragment("a"),
            TextFragment("b"),
            ThinkingFragment("x"),
            ThinkingFragment("y"),
            ReasoningSummaryFragment("p", 0),
            ReasoningSummaryFragment("q", 0),
            ReasoningSummaryFragment("r", 1),
            ToolNameFragment("echo", "t1"),
            TextFragment(""),
        ])
        assert merged == [
            TextFragment("ab"),
            ThinkingFragment("xy"),
            ReasoningSummaryFragment("pq", 0),
            ReasoningSummaryFragment("r", 1),
            ToolNameFragment("echo", "t1"),
        ]

    def test_empty_text_dropped(self):
        assert merge_fragments([TextFragment("")]) == []


class TestConfig:
    def test_context_window_validation(self):
        with pytest.raises(ValueError, match="threshold"):
            ContextWindowConfig(limit=100, threshold=0.0)
        with pytest.raises(ValueError, match="threshold"):
            ContextWindowConfig(threshold=1.5)
        with pytest.raises(ValueError, match="limit"):
            ContextWindowConfig(limit=0)

    def test_for_model(self):
        config = ContextWindowConfig.for_model(ModelInfo("m", context_window=1000), threshold=0.5)
        assert (config.limit, config.threshold, config.enabled) == (1000, 0.5, True)

    def test_loop_config_defaults(self):
        config = LoopConfig()
        assert config.tool_syntax is ToolSyntax.NATIVE
        assert config.context.threshold == 0.85
        assert config.max_rate_limit_retries == 3

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_turn_requests": 0}, {"max_parallel_sub_agents": 0}, {"max_rate_limit_retries": -1}],
    )
    def test_loop_config_validation(self, kwargs):
        with pytest.raises(ValueError):
            LoopConfig(**kwargs)


class TestTools:
    def test_scope_flags(self):
        assert ToolScope.SUB_AGENT_READ_ONLY.is_sub_agent
        assert ToolScope.SUB_AGENT_DEFAULT.is_sub_agent
        assert not ToolScope.DEFAULT.is_sub_agent

    def test_outcome_error_flag(self):
        request = ToolRequest("t", "echo")
        assert not ToolOutcome(request, ToolStatus.SUCCESS, "ok").is_error
        assert ToolOutcome(request, ToolStatus.CANCELLED, "x").is_error

    def test_execution_uses_revised_input(self):
        request = ToolRequest("t", "write_file", {"path": "./a"}, order=2, start_offset=5)
        outcome = ToolOutcome(request, ToolStatus.SUCCESS, "done", revised_input={"path": "a"})
        execution = ToolExecution.from_outcome(outcome)
        assert execution.request.input == {"path": "a"}
        assert execution.request.order == 2
        assert ToolExecution.from_dict(execution.to_dict()).request.input == {"path": "a"}


class TestErrors:
    def test_rate_limit_is_provider_error(self):
        err = RateLimitError(retry_after=2.5)
        assert isinstance(err, ProviderError)
        assert err.retry_after == 2.5
        assert str(err) == "Rate limited"

    def test_parse_error_carries_tool_name(self):
        assert ToolParseError("bad", tool_name="echo").tool_name == "echo"
