"""Registry for ``api_call`` action handlers.

Handlers are registered in code, usually at application startup through the
@action_handler decorator. Schemas name them; nothing reachable from a schema
document can run code that was not registered here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from schemacrud.errors import ConfigError
from schemacrud.schema.models import ActionDef, ActionType, Schema

if TYPE_CHECKING:
    from schemacrud.persistence.storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    """Everything a handler gets to act on one record."""

    schema: Schema
    record_id: Any
    action: ActionDef
    storage: Storage
    payload: dict[str, Any] = field(default_factory=dict)


# Handler signature: (ActionContext) -> dict | None
ActionHandler = Callable[[ActionContext], "dict[str, Any] | None"]


class ActionRegistry:
    """Handlers for ``api_call`` actions, keyed by handler name.

    A schema action reaches the handler registered under its ``handler``
    name, or under its own key when it declares none::

        {"key": "send_welcome", "type": "api_call", "handler": "welcome_mail"}

        @action_handler("welcome_mail")
        def welcome_mail(ctx: ActionContext) -> dict:
            ...
    """

    _handlers: dict[str, ActionHandler] = {}

    @classmethod
    def register(cls, name: str, handler: ActionHandler) -> None:
        """Register ``handler`` under ``name``; the first registration wins."""
        if name in cls._handlers:
            logger.debug("Action handler '%s' already registered, keeping the first", name)
            return
        cls._handlers[name] = handler

    @staticmethod
    def handler_name(action: ActionDef) -> str:
        return action.handler or action.key

    @classmethod
    def resolve(cls, action: ActionDef) -> ActionHandler:
        """The handler an ``api_call`` action dispatches to.

        Raises:
            ConfigError: If nothing is registered under the action's handler name.
        """
        name = cls.handler_name(action)
        try:
            return cls._handlers[name]
        except KeyError:
            raise ConfigError(
                f"Action '{action.key}' calls handler '{name}', which is not registered"
            ) from None

    @classmethod
    def unresolved(cls, schema: Schema) -> dict[str, str]:
        """``api_call`` actions of ``schema`` with no registered handler, key -> handler name."""
        return {
            action.key: cls.handler_name(action)
            for action in schema.actions
            if action.type == ActionType.API_CALL and cls.handler_name(action) not in cls._handlers
        }

    @classmethod
    def registered(cls) -> list[str]:
        return sorted(cls._handlers)

    @classmethod
    def clear(cls) -> None:
        cls._handlers.clear()


def action_handler(name: str) -> Callable[[ActionHandler], ActionHandler]:
    """Decorator form of :meth:`ActionRegistry.register`."""

    def decorator(fn: ActionHandler) -> ActionHandler:
        ActionRegistry.register(name, fn)
        return fn

    return decorator
