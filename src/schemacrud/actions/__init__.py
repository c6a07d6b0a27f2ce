"""Schema-declared actions: field updates and registered handlers.

Usage:
    from schemacrud.actions import action_handler, ActionContext

    @action_handler("send_welcome_email")
    def send_welcome_email(ctx: ActionContext) -> dict:
        mailer.send(ctx.record_id)
        return {"queued": True}
"""

from schemacrud.actions.executor import ActionExecutor, ActionResult, infer_field
from schemacrud.actions.registry import ActionContext, ActionRegistry, action_handler

__all__ = [
    "ActionContext",
    "ActionExecutor",
    "ActionRegistry",
    "ActionResult",
    "action_handler",
    "infer_field",
]
