"""Request and response models for the auth service."""

from pydantic import BaseModel


class PhoneNumber(BaseModel):
    number: str


class HashedCode(BaseModel):
    code: str
