from pydantic import BaseModel, Field


class NIP05Request(BaseModel):
    # Missing fields are reported by the registrar as MissingField.
    username: str | None = None
    publicKey: str | None = None


class ConvertPubkeyRequest(BaseModel):
    pubkey: str = Field(max_length=200)


class ProfileUpdateRequest(BaseModel):
    username: str | None = None
    name: str | None = Field(default=None, max_length=100)
    lightning_address: str | None = Field(default=None, max_length=320)
    relays: list[str] = Field(default_factory=list, max_length=50)


class ZapInvoiceRequest(BaseModel):
    username: str
    amount: int | str
    comment: str = Field(default="", max_length=280)


class LoginRequest(BaseModel):
    event: dict


class TicketCreateRequest(BaseModel):
    subject: str | None = Field(default=None, max_length=200)
    message: str | None = Field(default=None, max_length=5000)


class TicketStatusRequest(BaseModel):
    status: str | None = None
