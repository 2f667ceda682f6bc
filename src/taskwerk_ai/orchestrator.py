"""Completion orchestrator: one user turn, including bounded tool rounds."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING

from taskwerk_ai.errors import ConfigurationError
from taskwerk_ai.providers.models import CompletionRequest, Message, Usage

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taskwerk_ai.providers.models import (
        ChunkCallback,
        CompletionResult,
        ToolCall,
        ToolSpec,
    )
    from taskwerk_ai.registry import ProviderRegistry
    from taskwerk_ai.tools.base import ExecutionContext
    from taskwerk_ai.tools.executor import ToolExecutor
    from taskwerk_ai.tools.outcome import ToolResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    """What one turn produced.

    ``messages`` is the full transcript sent on the last request, so a caller
    can continue the conversation from it.
    """

    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()
    usage: Usage = field(default_factory=Usage)
    #: Network calls made during the turn.
    n_calls: int = 0
    #: Tool-execution rounds run.
    rounds: int = 0
    messages: tuple[Message, ...] = ()


class CompletionOrchestrator:
    """Drives request → tool execution → follow-up for a single turn.

    While rounds remain, each follow-up request offers the tools again; the
    last follow-up omits them and its answer is final. With the default of
    one round, a turn that uses tools makes exactly two network calls.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        executor: ToolExecutor,
        *,
        max_tool_rounds: int | None = None,
    ) -> None:
        if max_tool_rounds is None:
            max_tool_rounds = registry.settings.max_tool_rounds
        if max_tool_rounds < 1:
            raise ConfigurationError(
                f"max_tool_rounds must be ≥ 1, got {max_tool_rounds}",
                hint="Pass use_tools=False to run a turn without tools.",
            )
        self.registry = registry
        self.executor = executor
        self.max_tool_rounds = max_tool_rounds

    async def run_turn(
        self,
        messages: Sequence[Message],
        context: ExecutionContext,
        *,
        provider: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool = False,
        on_chunk: ChunkCallback | None = None,
        use_tools: bool = True,
    ) -> TurnResult:
        """Run one turn and return its final answer.

        Provider and network errors propagate and abort the turn; tool
        failures are reported back to the model as tool results.
        """
        transcript = list(messages)
        specs: tuple[ToolSpec, ...] = (
            self.executor.tool_specs(context.mode) if use_tools else ()
        )

        async def send(tools: tuple[ToolSpec, ...]) -> CompletionResult:
            request = CompletionRequest(
                messages=tuple(transcript),
                temperature=(
                    self.registry.settings.default_temperature
                    if temperature is None
                    else temperature
                ),
                max_tokens=max_tokens,
                stream=stream,
                on_chunk=on_chunk,
                tools=tools,
            )
            return await self.registry.complete(request, provider=provider, model=model)

        result = await send(specs)
        n_calls = 1
        usage = result.usage
        issued: list[ToolCall] = []
        outcomes: list[ToolResult] = []
        rounds = 0

        while specs and result.tool_calls and rounds < self.max_tool_rounds:
            rounds += 1
            calls = result.tool_calls
            logger.debug("Tool round %d: %d call(s)", rounds, len(calls))
            results = await self.executor.execute_tools(calls, context)
            issued.extend(calls)
            outcomes.extend(results)

            transcript.append(
                Message(role="assistant", content=result.content, tool_calls=calls)
            )
            transcript.extend(r.to_message() for r in results)

            follow_up_tools = specs if rounds < self.max_tool_rounds else ()
            result = await send(follow_up_tools)
            n_calls += 1
            usage = usage + result.usage

        return TurnResult(
            content=result.content,
            tool_calls=tuple(issued),
            tool_results=tuple(outcomes),
            usage=usage,
            n_calls=n_calls,
            rounds=rounds,
            messages=tuple(transcript),
        )
