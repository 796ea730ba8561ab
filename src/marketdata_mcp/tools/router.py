"""Action routing for the consolidated MCP tools.

Each tool takes an ``action`` argument and dispatches it through an
``ActionRouter``. Action names are matched case-insensitively, and
underscores are accepted in place of hyphens.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List


@dataclass(frozen=True)
class ActionDefinition:
    """One routable action of a tool."""

    name: str
    handler: Callable[..., Any]
    summary: str = ""


class ActionRouterError(ValueError):
    """Raised when a tool receives an action it does not support."""

    def __init__(self, message: str, *, allowed_actions: Iterable[str]):
        super().__init__(message)
        self.allowed_actions: List[str] = list(allowed_actions)


def _normalize(action: str) -> str:
    return action.strip().lower().replace("_", "-")


class ActionRouter:
    """Maps action names to handlers for a single tool."""

    def __init__(self, tool_name: str, actions: Iterable[ActionDefinition]):
        self.tool_name = tool_name
        self._actions: Dict[str, ActionDefinition] = {}
        for definition in actions:
            key = _normalize(definition.name)
            if key in self._actions:
                raise ValueError(f"Duplicate action '{definition.name}' for tool '{tool_name}'")
            self._actions[key] = definition

    def allowed_actions(self) -> List[str]:
        return list(self._actions)

    def describe(self) -> Dict[str, str]:
        """Action name -> one-line summary."""
        return {name: d.summary for name, d in self._actions.items()}

    def dispatch(self, action: str, **kwargs: Any) -> Any:
        """Call the handler for ``action`` with ``kwargs``.

        Raises:
            ActionRouterError: ``action`` is not registered
        """
        definition = self._actions.get(_normalize(action or ""))
        if definition is None:
            raise ActionRouterError(
                f"Unsupported {self.tool_name} action '{action}'",
                allowed_actions=self.allowed_actions(),
            )
        return definition.handler(**kwargs)
