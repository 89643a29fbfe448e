from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, List


class CreateSessionRequest(BaseModel):
    orderNumber: str = Field(min_length=1)


class VerifyPaymentRequest(BaseModel):
    orderNumber: str = Field(min_length=1)


class AlifCallback(BaseModel):
    orderId: Optional[str] = None
    status: Optional[str] = None
    transactionId: Optional[str] = ""
    token: Optional[str] = None


class RefundRequest(BaseModel):
    orderId: int
    amount: Optional[Decimal] = None  # TJS; omitted = refund everything that is left
    reason: str = ""
    adminId: str = Field(min_length=1)


class ResolveRefundRequest(BaseModel):
    succeeded: bool
    providerRef: str = ""
    note: str = ""
    adminId: str = Field(min_length=1)

class RefundLogOut(BaseModel):
    id: int
    amountDirams: int
    status: str
    reason: str
    processedBy: str
    gateway: str
    providerRef: str
    error: Optional[str] = None
    createdAt: str


class RefundListOut(BaseModel):
    orderId: int
    orderNumber: str
    totalDirams: int
    refundedDirams: int
    pendingDirams: int
    paymentStatus: str
    items: List[RefundLogOut]
