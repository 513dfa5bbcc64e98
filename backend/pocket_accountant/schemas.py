from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ParsedPurchaseInput(BaseModel):
    amount: float = Field(gt=0, allow_inf_nan=False)
    category: str = Field(min_length=2, max_length=120)
    note: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def strip_category(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class ParsedLimitInput(BaseModel):
    category: str = Field(min_length=2, max_length=120)
    amount: float = Field(gt=0, allow_inf_nan=False)

    @field_validator("category", mode="before")
    @classmethod
    def strip_category(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value
