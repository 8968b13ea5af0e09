from pydantic import BaseModel, Field


class SignInIn(BaseModel):
    # custom token minted by the identity provider; anonymous sign-in when absent
    custom_token: str | None = Field(default=None, max_length=4000)


class SignInOut(BaseModel):
    identity_id: str
    kind: str
    session_token: str
    fallback: bool


class SignOutOut(BaseModel):
    signed_out: bool


class MeOut(BaseModel):
    identity_id: str
    kind: str
