from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class TenantContext(BaseModel):
    """Identity of the tenant an engine call acts on.

    Resolved by the request layer and passed explicitly to every operation.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    user_id: Optional[str] = None

    @field_validator("tenant_id")
    @classmethod
    def tenant_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("tenant_id must not be blank")
        return value
