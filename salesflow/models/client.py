from pydantic import BaseModel, EmailStr, Field
from .common import ClientRef, gen_id

class Address(BaseModel):
    line1: str
    line2: str | None = None
    postal_code: str | None = None
    city: str

class Client(BaseModel):
    id: str = Field(default_factory=gen_id)
    name: str
    document_number: str | None = None  # identifiant fiscal (NIT / SIRET...)
    legacy_code: str | None = None      # code hérité de l'ancien système
    contact_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    address: Address | None = None
    notes: str | None = None

    @property
    def ref(self) -> ClientRef:
        return ClientRef(code=self.document_number or self.id)

    def identifiers(self) -> list[str]:
        return [v for v in (self.id, self.document_number, self.legacy_code) if v]
