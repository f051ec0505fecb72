from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, Callable, Type, Union
import inspect

from pydantic import BaseModel


SchemaSource = Union[Dict[str, Any], Type[BaseModel]]


def to_json_schema(schema: Optional[SchemaSource]) -> Dict[str, Any]:
    """Normalize a JSON schema dict or pydantic model class into a JSON schema"""

    if schema is None:
        return {"type": "object", "properties": {}}
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_json_schema()
    return dict(schema)


class Capability(ABC):
    """Base class for a named, schema-validated external action"""

    def __init__(self, name: str, description: str = "", input_schema: Optional[SchemaSource] = None):
        if not name:
            raise ValueError("Capability name must not be empty")
        self._name = name
        self._description = description
        self._input_schema = to_json_schema(input_schema)

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_schema(self) -> Dict[str, Any]:
        # callers get a copy so the registered schema stays immutable
        return dict(self._input_schema)

    @abstractmethod
    async def invoke(self, arguments: Dict[str, Any]) -> Any:
        """Run the capability with validated arguments"""
        pass

    def get_info(self) -> Dict[str, Any]:
        """Get capability information in tool-definition form"""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_schema
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class FunctionCapability(Capability):
    """Capability backed by a plain sync or async callable taking keyword arguments"""

    def __init__(
        self,
        func: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
        input_schema: Optional[SchemaSource] = None
    ):
        super().__init__(
            name=name if name is not None else func.__name__,
            description=description if description is not None else (inspect.getdoc(func) or ""),
            input_schema=input_schema
        )
        self._func = func

    async def invoke(self, arguments: Dict[str, Any]) -> Any:
        result = self._func(**arguments)
        if inspect.isawaitable(result):
            result = await result
        return result


def capability(
    name: Optional[str] = None,
    description: Optional[str] = None,
    input_schema: Optional[SchemaSource] = None
) -> Callable[[Callable[..., Any]], FunctionCapability]:
    """Decorator turning a function into a FunctionCapability"""

    def wrap(func: Callable[..., Any]) -> FunctionCapability:
        return FunctionCapability(func, name=name, description=description, input_schema=input_schema)

    return wrap
