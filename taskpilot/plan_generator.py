"""Plan generation from a natural-language goal.

Asks the generation collaborator for a bounded todo list, parses whatever
comes back, and builds a draft Plan. Generation never fails from the caller's
point of view: a collaborator error or an unparseable response produces a
single-task fallback plan tagged "manual".
"""

import os
from typing import Any

import structlog
from opentelemetry import trace

from taskpilot import telemetry
from taskpilot.llm import ChatMessage, GenerationClient
from taskpilot.models import PRIORITIES, Plan, PlanContext, Task, extract_plan_title
from taskpilot.plan_parser import (
    PLAN_SCHEMA,
    Malformed,
    ParseResult,
    Parsed,
    parse_plan_data,
    parse_plan_payload,
)
from taskpilot.store import PlanStore

logger = structlog.get_logger(__name__)

DEFAULT_ESTIMATE_MINUTES = 30
FALLBACK_ESTIMATE_MINUTES = 60
FALLBACK_REASONING = "Fallback todo when AI planning fails"

PLANNER_SYSTEM_PROMPT = """You are an expert project planner. Create a detailed, actionable plan to accomplish the given goal.

Return a JSON object with the following structure:
{{
  "todos": [
    {{
      "title": "Clear, actionable title",
      "description": "Detailed description of what needs to be done",
      "priority": "low|medium|high|critical",
      "category": "planning|setup|implementation|testing|documentation|deployment",
      "estimatedDuration": 30,
      "dependencies": ["Title of a todo that must be completed first"],
      "tags": ["tag1", "tag2"],
      "commands": ["shell command"],
      "files": ["path/to/file"],
      "reasoning": "Why this todo is necessary and how it fits in the overall plan"
    }}
  ]
}}

Guidelines:
1. Break down complex tasks into manageable todos (5-60 minutes each)
2. Express dependencies by the title of the earlier todo
3. Include setup, implementation, testing, and documentation
4. Be specific about files and commands
5. Estimate realistic durations in minutes
6. Use appropriate priorities
7. Maximum {max_todos} todos

Project Context:
{project_context}

Return ONLY the JSON object, no other text."""


class PlanGenerator:
    """Turns a goal into a draft Plan via a generation collaborator.

    Usage:
        generator = PlanGenerator(AnthropicGenerator(), store=store)
        plan = await generator.generate("Create a login form", max_todos=5)
    """

    def __init__(
        self,
        client: GenerationClient,
        store: PlanStore | None = None,
        working_directory: str | None = None,
        use_structured: bool = False,
        tracer: trace.Tracer | None = None,
    ):
        """Initialize the generator.

        Args:
            client: Generation collaborator
            store: Plan store to register and persist new plans in (optional)
            working_directory: Directory the plan will run in (defaults to cwd)
            use_structured: Request schema-shaped output before falling back
                to free text
            tracer: OpenTelemetry tracer (uses the global one if None)
        """
        self.client = client
        self.store = store
        self.working_directory = working_directory or os.getcwd()
        self.use_structured = use_structured
        self.tracer = tracer or trace.get_tracer("taskpilot")

    async def generate(
        self,
        goal: str,
        project_context: Any = "",
        max_todos: int = 20,
        selected_files: list[str] | None = None,
    ) -> Plan:
        """Generate a draft plan for a goal.

        Args:
            goal: The user's request, kept verbatim on the plan
            project_context: Project summary passed to the generator
            max_todos: Upper bound on the number of tasks (must be > 0)
            selected_files: Files the user pointed at, recorded in the context

        Returns:
            A Plan in draft status with at least one task

        Raises:
            ValueError: If max_todos is not positive
        """
        if max_todos <= 0:
            raise ValueError(f"max_todos must be positive, got {max_todos}")

        with self.tracer.start_as_current_span("taskpilot.plan.generate") as span:
            span.set_attribute("plan.max_todos", max_todos)

            messages = build_planning_messages(goal, project_context, max_todos)
            try:
                result = await self._request_todos(messages)
            except Exception as e:
                logger.warning("Plan generation failed, using fallback", error=str(e))
                telemetry.record_fallback_plan("transport")
                tasks = fallback_tasks(goal, f"{FALLBACK_REASONING}: {e}")
            else:
                if isinstance(result, Parsed):
                    tasks = build_tasks(result.todos, max_todos)
                else:
                    logger.warning(
                        "Generated plan was malformed, using fallback",
                        reason=result.reason,
                        raw_output=result.raw_text[:400],
                    )
                    telemetry.record_fallback_plan("format")
                    tasks = fallback_tasks(goal, FALLBACK_REASONING)

            plan = Plan(
                title=extract_plan_title(goal),
                description=goal,
                goal=goal,
                tasks=tasks,
                working_directory=self.working_directory,
                estimated_total_duration=sum(t.estimated_duration for t in tasks),
                context=PlanContext(
                    project_info=project_context or None,
                    selected_files=list(selected_files or []),
                    user_requirements=[goal],
                ),
            )
            span.set_attribute("plan.id", plan.id)
            span.set_attribute("plan.tasks", len(tasks))

        logger.info(
            "Plan generated",
            plan_id=plan.id,
            tasks=len(plan.tasks),
            estimated_minutes=plan.estimated_total_duration,
        )

        if self.store is not None:
            self.store.save(plan)
        return plan

    async def _request_todos(self, messages: list[ChatMessage]) -> ParseResult:
        """Ask the collaborator for todos, structured first when enabled."""
        if self.use_structured:
            try:
                data = await self.client.generate_structured(messages, PLAN_SCHEMA)
            except Exception as e:
                logger.info("Structured generation failed, retrying as text", error=str(e))
            else:
                result = parse_plan_data(data, raw_text=str(data))
                if isinstance(result, Parsed):
                    return result
                logger.info("Structured payload malformed, retrying as text", reason=result.reason)

        text = await self.client.generate(messages)
        return parse_plan_payload(text or "")


def build_planning_messages(
    goal: str, project_context: Any, max_todos: int
) -> list[ChatMessage]:
    """Compose the system and user messages for plan generation."""
    context_text = project_context if isinstance(project_context, str) else str(project_context)
    return [
        {
            "role": "system",
            "content": PLANNER_SYSTEM_PROMPT.format(
                max_todos=max_todos,
                project_context=context_text or "(none provided)",
            ),
        },
        {"role": "user", "content": f"Create a detailed plan to: {goal}"},
    ]


def build_tasks(todos: list[dict[str, Any]], max_todos: int) -> list[Task]:
    """Convert parsed todo dicts into Tasks, applying defaults.

    The list is truncated to max_todos. Dependencies that name another todo
    by title or 1-based position are rewritten to that task's id; anything
    else is kept as given.
    """
    tasks = [_build_task(index, data) for index, data in enumerate(todos[:max_todos])]

    references: dict[str, str] = {}
    for position, task in enumerate(tasks, start=1):
        references[str(position)] = task.id
        references[task.title.strip().lower()] = task.id

    for task in tasks:
        task.dependencies = [
            references.get(dep.strip().lower(), dep) for dep in task.dependencies
        ]
    return tasks


def _build_task(index: int, data: dict[str, Any]) -> Task:
    priority = str(data.get("priority") or "medium").lower()
    return Task(
        title=str(data.get("title") or f"Task {index + 1}"),
        description=str(data.get("description") or ""),
        priority=priority if priority in PRIORITIES else "medium",  # type: ignore[arg-type]
        category=str(data.get("category") or "implementation"),
        estimated_duration=_coerce_duration(
            data.get("estimatedDuration", data.get("estimated_duration"))
        ),
        dependencies=_string_list(data.get("dependencies")),
        tags=_string_list(data.get("tags")),
        commands=_string_list(data.get("commands")),
        files=_string_list(data.get("files")),
        reasoning=str(data.get("reasoning") or ""),
    )


def _coerce_duration(value: Any) -> float:
    if isinstance(value, bool):
        return DEFAULT_ESTIMATE_MINUTES
    if not isinstance(value, (int, float)):
        try:
            value = float(value)
        except (TypeError, ValueError):
            return DEFAULT_ESTIMATE_MINUTES
    return value if value > 0 else DEFAULT_ESTIMATE_MINUTES


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def fallback_tasks(goal: str, reasoning: str) -> list[Task]:
    """The single manual task used when planning fails."""
    return [
        Task(
            title="Execute Task",
            description=goal,
            priority="medium",
            category="implementation",
            estimated_duration=FALLBACK_ESTIMATE_MINUTES,
            tags=["manual"],
            reasoning=reasoning,
        )
    ]
