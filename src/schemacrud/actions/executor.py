"""Execution of schema-declared actions and single-field updates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from schemacrud.actions.registry import ActionContext, ActionRegistry
from schemacrud.auth.authorizer import AllowAllAuthorizer, Authorizer, require
from schemacrud.auth.password import PasswordService
from schemacrud.core.types import coerce_value, is_truthy
from schemacrud.errors import ConfigError, NotFoundError, ValidationError
from schemacrud.persistence.storage import Storage
from schemacrud.query.spec import Condition, Op, QuerySpec
from schemacrud.schema.models import ActionDef, ActionType, FieldDef, Schema

logger = logging.getLogger(__name__)

# Action key shapes that name their target field
_KEY_SUFFIXES = ("_action",)
_KEY_PREFIXES = ("toggle_", "set_")


@dataclass
class ActionResult:
    action: str
    ok: bool = True
    data: dict[str, Any] = field(default_factory=dict)
    field: str | None = None
    new_value: Any = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"ok": self.ok, "action": self.action}
        if self.field is not None:
            result["field"] = self.field
            result["new_value"] = self.new_value
        if self.message is not None:
            result["message"] = self.message
        if self.data:
            result["data"] = self.data
        return result


def infer_field(schema: Schema, action: ActionDef) -> FieldDef:
    """The field a field_update action writes.

    Uses ``action.field`` when declared, otherwise derives it from keys like
    ``password_action``, ``toggle_flag_enabled`` or ``set_status``.

    Raises:
        ConfigError: If no schema field can be determined.
    """
    if action.field:
        field_def = schema.get_field(action.field)
        if field_def is None:
            raise ConfigError(
                f"Action '{action.key}' targets unknown field '{action.field}' "
                f"on model '{schema.model}'"
            )
        return field_def

    candidates = [action.key]
    candidates += [action.key[: -len(s)] for s in _KEY_SUFFIXES if action.key.endswith(s)]
    candidates += [action.key[len(p):] for p in _KEY_PREFIXES if action.key.startswith(p)]
    for name in candidates:
        field_def = schema.get_field(name)
        if field_def is not None:
            return field_def

    raise ConfigError(
        f"Action '{action.key}' on model '{schema.model}' does not name a field "
        "and none could be inferred from its key"
    )


class ActionExecutor:
    """Runs one action against one record.

    Lifecycle per call: resolve the action, authorize it, compute the new
    value, persist the single field, report. Nothing is retried.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        authorizer: Authorizer | None = None,
        password_service: PasswordService | None = None,
    ):
        self.storage = storage
        self.authorizer = authorizer or AllowAllAuthorizer()
        self._password_service = password_service

    @property
    def password_service(self) -> PasswordService:
        # created on first password write
        if self._password_service is None:
            self._password_service = PasswordService()
        return self._password_service

    def execute(
        self,
        schema: Schema,
        record_id: Any,
        action_key: str,
        payload: dict[str, Any] | None = None,
        *,
        authorizer: Authorizer | None = None,
    ) -> ActionResult:
        """Execute a schema action.

        Args:
            schema: Full schema of the model.
            record_id: Primary key of the target record.
            action_key: Key of the action in ``schema.actions``.
            payload: Request body (``password``, ``value``, handler input).
            authorizer: Per-call authorizer; defaults to the executor's.

        Returns:
            An ActionResult. Password values are never reported.

        Raises:
            NotFoundError: Unknown action or record.
            ForbiddenError: The permission token was denied.
            ValidationError: Missing payload data, or a client-side action.
            ConfigError: The action definition is unusable.
            StorageError: The datastore failed.
        """
        payload = payload or {}
        action = schema.get_action(action_key)
        if action is None:
            raise NotFoundError(f"Action '{action_key}' not found for model '{schema.model}'")

        permission = action.permission or schema.permission("update")
        require(authorizer or self.authorizer, permission, f"run '{action_key}' on {schema.model}")

        record_id = schema.coerce_id(record_id)

        if action.type == ActionType.FIELD_UPDATE:
            return self._field_update(schema, record_id, action, payload)
        if action.type == ActionType.API_CALL:
            return self._api_call(schema, record_id, action, payload)
        raise ValidationError(
            f"Action '{action_key}' is a {action.type.value} action and runs client-side"
        )

    def update_field(
        self,
        schema: Schema,
        record_id: Any,
        field_name: str,
        value: Any,
        *,
        authorizer: Authorizer | None = None,
    ) -> ActionResult:
        """Write one field of one record, guarded by the ``update`` permission.

        Raises:
            NotFoundError: Unknown field or record.
            ForbiddenError: Update permission denied.
            ValidationError: Field is read-only/computed or the value is invalid.
        """
        field_def = schema.get_field(field_name)
        if field_def is None:
            raise NotFoundError(f"Field '{field_name}' not found for model '{schema.model}'")

        require(
            authorizer or self.authorizer,
            schema.permission("update"),
            f"update {schema.model}.{field_name}",
        )

        if field_def.readonly or field_def.computed or field_name == schema.primary_key:
            raise ValidationError(f"Field '{field_name}' is read-only")

        record_id = schema.coerce_id(record_id)
        if field_def.is_password:
            new_value = self._hash_password(field_def, {"password": value})
        else:
            new_value = self._coerce(field_def, value)

        self._persist(schema, record_id, field_def.name, new_value)
        logger.info("Updated %s.%s for id=%s", schema.model, field_name, record_id)
        return ActionResult(
            action="update_field",
            field=field_name,
            new_value=None if field_def.is_password else new_value,
        )

    # ------------------------------------------------------------------
    # Action types
    # ------------------------------------------------------------------

    def _field_update(
        self,
        schema: Schema,
        record_id: Any,
        action: ActionDef,
        payload: dict[str, Any],
    ) -> ActionResult:
        field_def = infer_field(schema, action)
        is_password = action.requires_password_input or field_def.is_password

        if action.toggle:
            current = self._current_value(schema, record_id, field_def.name)
            new_value = not is_truthy(current)
        elif action.has_value:
            new_value = action.value
        elif is_password:
            new_value = self._hash_password(field_def, payload)
        elif "value" in payload or field_def.name in payload:
            raw = payload["value"] if "value" in payload else payload[field_def.name]
            new_value = self._coerce(field_def, raw)
        else:
            raise ValidationError(f"Action '{action.key}' requires a value")

        self._persist(schema, record_id, field_def.name, new_value)
        logger.info(
            "Executed action '%s' on %s id=%s (%s)",
            action.key, schema.model, record_id, field_def.name,
        )
        return ActionResult(
            action=action.key,
            field=field_def.name,
            new_value=None if is_password else new_value,
            message=action.success_message,
        )

    def _api_call(
        self,
        schema: Schema,
        record_id: Any,
        action: ActionDef,
        payload: dict[str, Any],
    ) -> ActionResult:
        handler = ActionRegistry.resolve(action)
        context = ActionContext(
            schema=schema,
            record_id=record_id,
            action=action,
            storage=self.storage,
            payload=payload,
        )
        data = handler(context) or {}
        logger.info("Executed action '%s' on %s id=%s via handler", action.key, schema.model, record_id)
        return ActionResult(action=action.key, message=action.success_message, data=dict(data))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _coerce(self, field_def: FieldDef, value: Any) -> Any:
        if value is None or value == "":
            if field_def.required:
                raise ValidationError(f"Field '{field_def.name}' is required")
            return None
        try:
            return coerce_value(field_def.type, value)
        except ValueError as exc:
            raise ValidationError(f"Invalid value for field '{field_def.name}': {exc}") from exc

    def _hash_password(self, field_def: FieldDef, payload: dict[str, Any]) -> str:
        password = payload.get("password")
        if not password or not isinstance(password, str):
            raise ValidationError(f"A password is required to update '{field_def.name}'")
        confirmation = payload.get("password_confirmation")
        if confirmation is not None and confirmation != password:
            raise ValidationError("Password confirmation does not match")
        min_length = (field_def.validation.get("length") or {}).get("min")
        if min_length and len(password) < int(min_length):
            raise ValidationError(
                f"Password must be at least {min_length} characters"
            )
        return self.password_service.hash(password)

    def _current_value(self, schema: Schema, record_id: Any, field_name: str) -> Any:
        spec = QuerySpec(
            table=schema.table,
            primary_key=schema.primary_key,
            connection=schema.connection,
            columns=(schema.primary_key, field_name),
            limit=1,
        )
        spec = spec.and_where(Condition(spec.col(schema.primary_key), Op.EQ, record_id))
        if schema.soft_delete:
            spec = spec.and_where(Condition(spec.col("deleted_at"), Op.IS_NULL))
        rows = self.storage.fetch(spec)
        if not rows:
            raise NotFoundError(f"Record '{record_id}' not found for model '{schema.model}'")
        return rows[0].get(field_name)

    def _persist(self, schema: Schema, record_id: Any, field_name: str, value: Any) -> None:
        values = {field_name: value}
        if schema.timestamps:
            values["updated_at"] = datetime.now(UTC).isoformat()
        changed = self.storage.update(
            schema.table, schema.primary_key, record_id, values, schema.connection
        )
        if changed == 0:
            raise NotFoundError(f"Record '{record_id}' not found for model '{schema.model}'")
