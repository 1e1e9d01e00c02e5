"""Vault records and the auth service login payload."""
import uuid

from pydantic import BaseModel, ConfigDict, Field, AliasChoices

from .vault.crypto import is_encrypted


class SecretRecord(BaseModel):
    """A single vault entry.

    The three data fields are the unit of encryption; ``id`` and
    ``owner_id`` are never touched by the engine.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        validation_alias=AliasChoices("id", "data_Id"),
    )
    field_a: str = Field(validation_alias=AliasChoices("field_a", "data01"))
    field_b: str = Field(validation_alias=AliasChoices("field_b", "data02"))
    field_c: str = Field(validation_alias=AliasChoices("field_c", "data03"))
    owner_id: str = Field(
        default="",
        validation_alias=AliasChoices("owner_id", "user_Id"),
    )

    def fields(self) -> tuple[str, str, str]:
        return (self.field_a, self.field_b, self.field_c)

    def is_encrypted(self) -> bool:
        """True when every data field passes the Base64 heuristic."""
        return all(is_encrypted(value) for value in self.fields())


class LoginResult(BaseModel):
    """What the auth service hands back after accepting credentials.

    ``expire_minutes`` arrives as a string from the API and is coerced.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    user_id: str = Field(validation_alias=AliasChoices("user_id", "user_Id"))
    role: str = ""
    sql_token: str = Field(validation_alias=AliasChoices("sql_token", "sqlToken"))
    api_token: str = Field(validation_alias=AliasChoices("api_token", "apiToken"))
    expire_minutes: int = Field(
        gt=0, validation_alias=AliasChoices("expire_minutes", "expireMin"),
    )
