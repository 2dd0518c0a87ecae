"""Resolution of configured values from messages, context stores and expressions."""

from __future__ import annotations

from collections.abc import Callable, Mapping, MutableMapping
from enum import Enum
import inspect
import logging
import math
import os
import re
from typing import Any

from jinja2 import StrictUndefined, TemplateError, Undefined
from jinja2.sandbox import SandboxedEnvironment

from .exceptions import PropertyResolutionError

LOGGER = logging.getLogger(__name__)

_PATH_SEGMENT = re.compile(r"[^.\[\]]+")

ExpressionEvaluator = Callable[[str, Any], Any]


class ResolutionScope(str, Enum):
    """Where a configured value is looked up."""

    MESSAGE = "msg"
    FLOW = "flow"
    GLOBAL = "global"
    BOOL = "bool"
    NUM = "num"
    STRING = "str"
    ENV = "env"
    EXPRESSION = "expression"

    @classmethod
    def _missing_(cls, value: object) -> ResolutionScope | None:
        if value == "jsonata":
            return cls.EXPRESSION
        return None


def split_path(path: str) -> list[str]:
    """Split ``a.b[0].c`` into ``["a", "b", "0", "c"]``."""
    segments = _PATH_SEGMENT.findall(str(path))
    if not segments:
        raise PropertyResolutionError(f"Property path {path!r} is empty.")
    return segments


def get_path(root: Any, path: str) -> Any:
    """Read a dotted path from nested mappings/lists; missing keys yield ``None``."""
    current = root
    for segment in split_path(path):
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def set_path(root: MutableMapping[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at a dotted path, creating intermediate dicts as needed."""
    segments = split_path(path)
    current: Any = root
    for segment in segments[:-1]:
        if isinstance(current, MutableMapping):
            child = current.get(segment)
            if child is None:
                child = current[segment] = {}
            current = child
        elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            raise PropertyResolutionError(
                f"Cannot set {path!r}: {segment!r} is not inside a container."
            )

    leaf = segments[-1]
    if isinstance(current, MutableMapping):
        current[leaf] = value
    elif isinstance(current, list) and leaf.isdigit() and int(leaf) < len(current):
        current[int(leaf)] = value
    else:
        raise PropertyResolutionError(f"Cannot set {path!r} on a non-container value.")


class ContextStore:
    """Shared key/value store backing the ``flow`` and ``global`` scopes."""

    def __init__(self, name: str, initial: Mapping[str, Any] | None = None) -> None:
        self.name = name
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, path: str) -> Any:
        return get_path(self._data, path)

    def set(self, path: str, value: Any) -> None:
        set_path(self._data, path, value)


class JinjaExpressionEvaluator:
    """Evaluate expressions against a message with a sandboxed jinja2 engine.

    Top-level message fields are exposed as variables and the whole message
    is bound to ``msg``; undefined names are errors, not ``None``.
    """

    def __init__(self) -> None:
        self._env = SandboxedEnvironment(undefined=StrictUndefined)
        self._compiled: dict[str, Callable[..., Any]] = {}

    def __call__(self, expression: str, message: Any) -> Any:
        try:
            compiled = self._compiled.get(expression)
            if compiled is None:
                compiled = self._env.compile_expression(
                    expression, undefined_to_none=False
                )
                self._compiled[expression] = compiled
            context: dict[str, Any] = {}
            if isinstance(message, Mapping):
                context.update((k, v) for k, v in message.items() if isinstance(k, str))
            context["msg"] = message
            result = compiled(context)
        except TemplateError as exc:
            raise PropertyResolutionError(
                f"Invalid expression {expression!r}: {exc}"
            ) from exc
        except Exception as exc:  # noqa: BLE001 - any evaluation failure aborts the wait.
            raise PropertyResolutionError(
                f"Expression {expression!r} failed: {exc}"
            ) from exc
        if isinstance(result, Undefined):
            raise PropertyResolutionError(f"Expression {expression!r} is undefined.")
        return result


def _parse_number(value: Any) -> int | float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return math.nan


class PropertyResolver:
    """Resolve ``(scope, value)`` pairs the way each scope defines.

    ``resolve`` is synchronous; ``aresolve`` additionally awaits expression
    evaluators that return awaitables.  Writes for ``set-property`` go
    through ``assign``.
    """

    def __init__(
        self,
        flow: ContextStore | None = None,
        global_store: ContextStore | None = None,
        environ: Mapping[str, str] | None = None,
        expression_evaluator: ExpressionEvaluator | None = None,
    ) -> None:
        self.flow = flow if flow is not None else ContextStore("flow")
        self.global_store = (
            global_store if global_store is not None else ContextStore("global")
        )
        self._environ = environ if environ is not None else os.environ
        self._evaluate = expression_evaluator or JinjaExpressionEvaluator()
        self._resolvers: dict[ResolutionScope, Callable[[Any, Any], Any]] = {
            ResolutionScope.MESSAGE: self._from_message,
            ResolutionScope.FLOW: self._from_flow,
            ResolutionScope.GLOBAL: self._from_global,
            ResolutionScope.BOOL: self._from_bool,
            ResolutionScope.NUM: self._from_num,
            ResolutionScope.STRING: self._from_string,
            ResolutionScope.ENV: self._from_env,
            ResolutionScope.EXPRESSION: self._from_expression,
        }

    @staticmethod
    def _scope(scope: ResolutionScope | str) -> ResolutionScope:
        try:
            return ResolutionScope(scope)
        except ValueError:
            raise PropertyResolutionError(f"Unknown resolution scope {scope!r}.") from None

    def resolve(self, message: Any, scope: ResolutionScope | str, value: Any) -> Any:
        """Resolve synchronously; async expression evaluators are rejected."""
        result = self._resolvers[self._scope(scope)](message, value)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise PropertyResolutionError(
                f"Expression {value!r} resolves asynchronously; use aresolve()."
            )
        return result

    async def aresolve(self, message: Any, scope: ResolutionScope | str, value: Any) -> Any:
        """Resolve, awaiting asynchronous expression results."""
        result = self._resolvers[self._scope(scope)](message, value)
        if inspect.isawaitable(result):
            try:
                result = await result
            except PropertyResolutionError:
                raise
            except Exception as exc:  # noqa: BLE001 - evaluator failures abort the wait.
                raise PropertyResolutionError(
                    f"Expression {value!r} failed: {exc}"
                ) from exc
        return result

    def assign(
        self, message: Any, scope: ResolutionScope | str, path: str, value: Any
    ) -> Any:
        """Store ``value`` at ``path`` in ``scope`` and return the message."""
        target = self._scope(scope)
        if target is ResolutionScope.MESSAGE:
            if not isinstance(message, MutableMapping):
                raise PropertyResolutionError("Message is not a mutable mapping.")
            set_path(message, path, value)
        elif target is ResolutionScope.FLOW:
            self.flow.set(path, value)
        elif target is ResolutionScope.GLOBAL:
            self.global_store.set(path, value)
        else:
            raise PropertyResolutionError(f"Cannot assign into scope {target.value!r}.")
        return message

    def _from_message(self, message: Any, value: Any) -> Any:
        return get_path(message, value)

    def _from_flow(self, message: Any, value: Any) -> Any:
        return self.flow.get(value)

    def _from_global(self, message: Any, value: Any) -> Any:
        return self.global_store.get(value)

    def _from_bool(self, message: Any, value: Any) -> bool:
        return value is True or value == "true"

    def _from_num(self, message: Any, value: Any) -> int | float:
        return _parse_number(value)

    def _from_string(self, message: Any, value: Any) -> Any:
        return value

    def _from_env(self, message: Any, value: Any) -> str | None:
        return self._environ.get(str(value))

    def _from_expression(self, message: Any, value: Any) -> Any:
        LOGGER.debug("resolver.expression", extra={"event": "resolver.expression"})
        try:
            return self._evaluate(str(value), message)
        except PropertyResolutionError:
            raise
        except Exception as exc:  # noqa: BLE001 - evaluator failures abort the wait.
            raise PropertyResolutionError(f"Expression {value!r} failed: {exc}") from exc
