from pydantic import BaseModel, SecretStr


class AdminKeyModel(BaseModel):
    key: SecretStr


class AdminModeResponseModel(BaseModel):
    is_admin: bool
    # Admin status travels in the JWT, so a new token is needed to pick it up
    refresh_required: bool = False
