"""
Database Schemas for Nutri Store (MongoDB collections)

Each Pydantic model represents a collection in your database.
Model name is converted to lowercase for the collection name:
- User -> "user"
- Product -> "product"
- Order -> "order"
- Cart -> "cart"
- Notification -> "notification"
- Message -> "message"
- Profile -> "profile"
- OtpCode -> "otp"

Documents are validated through these models before they are inserted.
References between collections are string ids; usernames are copied
alongside them for display only.
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime

UserType = Literal["Producer", "Consumer"]
OrderStatus = Literal["pending", "accepted", "confirmed", "declined"]
NotificationStatus = Literal["pending", "read", "accepted", "declined"]
Audience = Literal["buyer", "seller"]
OtpPurpose = Literal["login", "action"]
Unit = Literal["per kg", "per piece", "per litre", "per pack"]
HarvestCondition = Literal["harvested", "not harvested"]


class BankDetails(BaseModel):
    accountNumber: str = Field(..., min_length=1)
    bankName: str = Field(..., min_length=1)
    branch: str = Field(..., min_length=1)
    ifsc: str = Field(..., min_length=1)
    accountHolderName: str = Field(..., min_length=1)
    upiId: Optional[str] = None


class User(BaseModel):
    username: str
    email: str
    passwordHash: str
    mobileNumber: str
    userType: UserType
    name: str
    photo: Optional[str] = None
    address: Optional[str] = None
    occupation: Optional[str] = None
    kisanCard: Optional[str] = None
    farmerId: Optional[str] = None
    bank: Optional[BankDetails] = None
    listedItems: int = 0
    monthlyIncome: float = 0
    buyersCount: int = 0
    quantitySold: int = 0
    verified: bool = False
    notifications: bool = True
    language: str = "en"
    refreshToken: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class Profile(BaseModel):
    userId: str
    name: Optional[str] = None
    address: Optional[str] = None
    occupation: Optional[str] = None
    photo: Optional[str] = None
    completion: int = Field(0, ge=0, le=100)
    verified: bool = False
    verifiedAt: Optional[datetime] = None
    bankUpdatedAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class Product(BaseModel):
    sellerId: str
    sellerName: str
    itemName: str
    price: float = Field(..., gt=0)
    location: str
    unit: Unit
    quantity: int = Field(..., ge=0)
    harvestCondition: HarvestCondition
    deliveryTime: int = Field(..., ge=0, description="Days until delivery")
    expiryDate: datetime
    offers: Optional[str] = None
    image: Optional[str] = None
    video: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class Order(BaseModel):
    orderId: str = Field(..., description="Group id shared by every line of one checkout")
    buyerId: str
    buyerUsername: str
    sellerId: str
    sellerName: str
    productId: str
    itemName: str
    quantity: int = Field(..., gt=0)
    unitPrice: float = Field(..., ge=0)
    totalPrice: float = Field(..., ge=0)
    deliveryAddress: str
    mobileNo: Optional[str] = None
    paymentMethod: str
    status: OrderStatus = "pending"
    orderDate: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class Cart(BaseModel):
    userId: str
    productId: str
    quantity: int = Field(..., gt=0)


class Notification(BaseModel):
    orderId: str = Field(..., description="Order document id")
    orderGroupId: str
    audience: Audience
    buyerId: str
    buyerUsername: str
    sellerId: str
    sellerName: str
    deliveryAddress: str
    status: NotificationStatus = "pending"
    message: str = ""
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class Message(BaseModel):
    orderId: str
    senderId: str
    sender: str
    receiverId: str
    receiver: str
    message: str = Field(..., min_length=1)
    timestamp: Optional[datetime] = None


class OtpCode(BaseModel):
    userId: str
    purpose: OtpPurpose
    codeHash: str
    expiresAt: datetime
    createdAt: Optional[datetime] = None
