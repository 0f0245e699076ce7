"""
Schemas comunes reutilizables.
"""
from pydantic import BaseModel
from typing import Generic, TypeVar, Optional


T = TypeVar('T')


class MessageResponse(BaseModel):
    """Schema de respuesta con mensaje simple."""

    message: str
    success: bool = True
    data: Optional[dict] = None

    model_config = {"from_attributes": True}


class ErrorResponse(BaseModel):
    """Schema de respuesta de error."""

    success: bool = False
    message: str
    detail: str
    error_code: Optional[str] = None

    model_config = {"from_attributes": True}


class DataResponse(BaseModel, Generic[T]):
    """Schema de respuesta exitosa con payload tipado."""

    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None

    model_config = {"from_attributes": True}
