# Parameter Validation
from typing import Dict, Any, List

import jsonschema
from jsonschema.validators import validator_for
from referencing.exceptions import Unresolvable

from agent_engine.domain.errors import InvalidArgumentsError
from agent_engine.domain.tool.capability import Capability


class ToolParameterValidator:
    @staticmethod
    def collect_errors(schema: Dict[str, Any], parameters: Any) -> List[str]:
        validator_cls = validator_for(schema)
        try:
            validator_cls.check_schema(schema)
        except jsonschema.SchemaError as e:
            return [f"Capability schema is invalid: {e.message}"]

        try:
            errors = sorted(validator_cls(schema).iter_errors(parameters), key=lambda e: [str(p) for p in e.path])
        except Unresolvable as e:
            return [f"Capability schema is invalid: {e}"]

        return [
            f"{'/'.join(str(p) for p in error.path) or '<root>'}: {error.message}"
            for error in errors
        ]

    @staticmethod
    def validate_tool_call(capability: Capability, parameters: Any) -> Dict[str, Any]:
        if not isinstance(parameters, dict):
            raise InvalidArgumentsError(
                capability.name,
                [f"arguments must be an object, got {type(parameters).__name__}"]
            )

        # JSON Schema validation
        errors = ToolParameterValidator.collect_errors(capability.input_schema, parameters)
        if errors:
            raise InvalidArgumentsError(capability.name, errors)

        return parameters
