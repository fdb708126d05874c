from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

PHONE_PATTERN = r"^\+?[0-9 ()\-]{10,20}$"
POSTAL_CODE_PATTERN = r"^[0-9]{5}$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)


class ContactInfo(CamelModel):
    email: EmailStr | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)


class Address(CamelModel):
    street: str = Field(min_length=1, max_length=200)
    exterior_number: str = Field(min_length=1, max_length=20)
    interior_number: str | None = Field(default=None, max_length=20)
    neighborhood: str = Field(min_length=1, max_length=120)
    postal_code: str = Field(pattern=POSTAL_CODE_PATTERN)
    municipality: str = Field(min_length=1, max_length=120)
    state: str = Field(min_length=1, max_length=120)
    country: str | None = Field(default=None, min_length=2, max_length=2)
