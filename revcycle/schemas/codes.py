"""
Pydantic Schemas for Code Reference Lookups.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class ProcedureCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str
    category: str
    default_charge: Decimal


class DiagnosisCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str
    chapter: str
