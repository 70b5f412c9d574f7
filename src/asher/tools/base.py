"""Base implementation for tools implementing the Tool protocol."""

from __future__ import annotations

from datetime import date, datetime
import inspect
from typing import Any

from loguru import logger

from asher.adapters.db.store import EncryptedStore
from asher.core.errors import AsherError
from asher.tools.protocol import ToolInputSchema


def ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def fail(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


def to_jsonable(value: Any) -> Any:
    """Convert datetimes and bytes in nested rows to JSON-friendly values."""
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [to_jsonable(item) for item in value]
    return value


class StandardTool:
    """
    Base class providing common Tool protocol implementation.

    Subclasses must override:
    - _name: Tool name
    - _description: Tool description
    - _input_schema: Parameter schema
    - _execute_impl: Core execution logic (sync or async), returning the
      result envelope built with ``ok()`` or ``fail()``

    ``execute_async`` turns any exception raised by ``_execute_impl`` into a
    failure envelope, so callers across the tool boundary only ever see
    structured results.

    Example:
        class MyTool(StandardTool):
            _name = "my_tool"
            _description = "Does something useful"
            _input_schema: ToolInputSchema = {
                "type": "object",
                "properties": {
                    "param": {"type": "string", "description": "A parameter"}
                },
                "required": ["param"]
            }

            async def _execute_impl(self, **kwargs: Any) -> dict[str, Any]:
                return ok({"echo": kwargs["param"]})
    """

    _name: str
    _description: str
    _input_schema: ToolInputSchema

    @property
    def name(self) -> str:
        """Return the tool name."""
        return self._name

    @property
    def description(self) -> str:
        """Return the tool description."""
        return self._description

    @property
    def input_schema(self) -> ToolInputSchema:
        """Return the input schema."""
        return self._input_schema

    async def execute_async(self, **kwargs: Any) -> dict[str, Any]:
        """
        Execute tool logic and wrap failures.

        Args:
            **kwargs: Parameters matching input_schema

        Returns:
            Result envelope
        """
        missing = [
            param for param in self._input_schema["required"] if param not in kwargs
        ]
        if missing:
            return fail(f"Missing required parameter(s): {', '.join(missing)}")

        try:
            result = self._execute_impl(**kwargs)
            if inspect.iscoroutine(result):
                result = await result
        except AsherError as e:
            logger.bind(tool=self._name, error_type=type(e).__name__).warning(
                "Tool {} failed: {}", self._name, e
            )
            return fail(str(e))
        except Exception as e:
            logger.bind(tool=self._name).exception("Tool {} crashed", self._name)
            return fail(f"{self._name} failed: {e}")
        return to_jsonable(result)

    def _execute_impl(self, **kwargs: Any) -> Any:
        """
        Override in subclass to implement tool logic.

        Can be either sync or async.

        Raises:
            NotImplementedError: If subclass doesn't implement this method
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement _execute_impl"
        )


class StoreBackedTool(StandardTool):
    """Tool that needs the encrypted store opened (and unlocked) first."""

    def __init__(self, store: EncryptedStore) -> None:
        self._store = store

    async def _open_store(self) -> EncryptedStore:
        await self._store.open()
        return self._store
