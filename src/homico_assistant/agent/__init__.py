"""Assistant package: the turn orchestrator and the pieces it drives.

Tools, category resolution, price tiers, prompts and the action synthesizer
live in separate modules; ``AssistantService`` ties them together per turn.
"""

from .agent import (
    AssistantService,
    MessageValidationError,
    TurnResult,
    TurnState,
    get_assistant_service_async,
    reset_assistant_service,
)

__all__ = [
    "AssistantService",
    "MessageValidationError",
    "TurnResult",
    "TurnState",
    "get_assistant_service_async",
    "reset_assistant_service",
]
