from typing import Optional

from pydantic import BaseModel, Field


class CredentialUpdateRequest(BaseModel):
    llm_api_key: Optional[str] = Field(
        default=None,
        description="Tenant-owned model provider key. Null reverts to the platform key.",
    )


class CredentialUpdateResponse(BaseModel):
    uses_own_key: bool
