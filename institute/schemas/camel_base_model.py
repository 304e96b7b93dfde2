from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelCaseBaseModel(BaseModel):
    """
    Base model with camelCase field aliases.

    This model maps between camelCase (used by the dashboard client, the
    secondary API and the local cache) and snake_case (used internally in Python):

    - Input: camelCase or snake_case keys are both accepted for validation.
    - Internal: snake_case fields are used throughout the Python codebase.
    - Output: call `to_json_dict()` (or `model_dump(by_alias=True, mode="json")`)
      to serialize fields back to camelCase; enums become their values.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_json_dict(self, exclude_none: bool = False) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=exclude_none)
