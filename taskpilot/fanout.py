"""Parallel fan-out of one instruction to several agents.

Every invocation starts at once and the caller waits for all of them. A
failing invocation does not cancel the others; failures are collected next to
the successes. Invocations must not touch plan state.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

from taskpilot.blueprints import AgentInstance

logger = structlog.get_logger(__name__)

AgentInvocation = Callable[[AgentInstance, str], Awaitable[Any]]


@dataclass
class FanOutResult:
    """Aggregated outcome of a fan-out, keyed by agent id."""

    successes: dict[str, Any] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return not self.failures

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)


async def fan_out(
    instruction: str, agents: list[AgentInstance], invoke: AgentInvocation
) -> FanOutResult:
    """Run the same instruction against every agent concurrently.

    Args:
        instruction: What each agent is asked to do
        agents: Agents to invoke
        invoke: Coroutine function performing one agent invocation

    Returns:
        FanOutResult with one entry per agent
    """
    tasks = [asyncio.create_task(invoke(agent, instruction)) for agent in agents]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    outcome = FanOutResult()
    for agent, result in zip(agents, results):
        if isinstance(result, BaseException):
            logger.warning("Agent invocation failed", agent=agent.name, error=str(result))
            outcome.failures[agent.id] = str(result) or type(result).__name__
        else:
            outcome.successes[agent.id] = result

    logger.info(
        "Fan-out finished",
        agents=len(agents),
        succeeded=len(outcome.successes),
        failed=len(outcome.failures),
    )
    return outcome
