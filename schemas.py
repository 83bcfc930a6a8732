from typing import Optional
from pydantic import BaseModel, Field


class AnalyzeResponse(BaseModel):
    success: bool = True
    analysis: str
    fileCount: int
    hasCustomQuestion: bool = False


class PaymentIntentResponse(BaseModel):
    clientSecret: str
    amount: int = Field(..., description="Charge amount in cents")


class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    requiresPayment: Optional[bool] = None
