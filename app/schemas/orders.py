from pydantic import BaseModel, Field
from typing import Optional, List


class TouristIn(BaseModel):
    name: str
    passport: Optional[str] = ""
    nationality: Optional[str] = ""


class TourOrderCreate(BaseModel):
    fullName: str = ""
    email: str  # plain str to allow .local and other dev domains
    phone: str = ""
    tourDate: str = ""
    tourists: List[TouristIn] = Field(min_length=1)
    wishes: str = ""


class OrderOut(BaseModel):
    id: int
    orderNumber: str
    kind: str
    totalAmount: float
    currency: str = "TJS"
    status: str
    paymentStatus: str
    paymentMethod: Optional[str] = None
