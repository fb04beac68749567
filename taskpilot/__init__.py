"""taskpilot - Turn development goals into approved, dependency-ordered plans.

Generates plans from natural-language goals, gates them on human approval,
executes them task by task while keeping a durable progress document, and
picks the best-suited agent for a task.
"""

__version__ = "0.1.0"
