from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base for boundary models.

    Python attributes are snake_case; JSON uses camelCase (agentId, inputTokens).
    Both spellings are accepted on input.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        """Serialize with camelCase keys for export."""
        return self.model_dump(by_alias=True, mode="json")
