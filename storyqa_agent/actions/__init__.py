from .action_registry import ActionRegistry, ActionRuntime, ActionSpec, Capability, StepOutcome
from .api_actions import register_api_actions
from .ui_actions import register_ui_actions


def create_default_registry() -> ActionRegistry:
    """Registry holding every UI, API and context-only action."""
    registry = ActionRegistry()
    register_ui_actions(registry)
    register_api_actions(registry)
    return registry


__all__ = [
    "ActionRegistry",
    "ActionRuntime",
    "ActionSpec",
    "Capability",
    "StepOutcome",
    "create_default_registry",
    "register_api_actions",
    "register_ui_actions",
]
