"""
Pydantic schemas for request/response validation (Http/Requests).
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


# Products
class FavoriteRequest(BaseModel):
    """Explicit value; omitted means toggle."""
    isFavorite: Optional[bool] = None


class ImportProductRequest(BaseModel):
    internalSku: Optional[str] = None
    shopifyProductId: Optional[str] = None
    addToFavorites: Optional[bool] = None


class ProductSupplierOffer(BaseModel):
    supplier: Optional[str] = None
    supplierSku: str
    cost: float
    inventory: int
    lastSyncAt: Optional[datetime] = None


class ProductResponse(BaseModel):
    id: str
    title: str
    upc: Optional[str] = None
    internalSku: Optional[str] = None
    shopifyProductId: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    msrp: Optional[float] = None
    isFavorite: bool = False
    isSupplierLocked: bool = False
    preferredSupplier: Optional[str] = None
    importedAt: Optional[datetime] = None
    suppliers: List[ProductSupplierOffer] = []


class ProductListResponse(BaseModel):
    products: List[ProductResponse]
    page: int
    limit: int


class FavoriteResponse(BaseModel):
    id: str
    isFavorite: bool


# Orders
class RetrySubmissionRequest(BaseModel):
    supplierId: Optional[str] = None


class RetrySubmissionResponse(BaseModel):
    requeued: int
    taskIds: List[str]


class OrderItemResponse(BaseModel):
    id: str
    productId: Optional[str] = None
    productTitle: Optional[str] = None
    supplierId: Optional[str] = None
    supplierName: Optional[str] = None
    supplierSku: str
    quantity: int = Field(gt=0)
    unitCost: float
    totalCost: float
    submissionStatus: str
    submissionError: Optional[str] = None


class SubmissionTaskResponse(BaseModel):
    id: str
    supplierId: str
    supplierName: Optional[str] = None
    status: str
    attempts: int
    maxAttempts: int
    nextAttemptAt: Optional[datetime] = None
    lastError: Optional[str] = None


class OrderSummaryResponse(BaseModel):
    id: str
    externalOrderRef: str
    orderNumber: Optional[str] = None
    customerEmail: Optional[str] = None
    totalAmount: float
    status: str
    supplierCount: int
    itemCount: int
    createdAt: Optional[datetime] = None


class OrderDetailResponse(OrderSummaryResponse):
    shippingAddress: Optional[dict] = None
    routingDiagnostics: Optional[list] = None
    items: List[OrderItemResponse] = []
    submissions: List[SubmissionTaskResponse] = []


class RecentOrdersResponse(BaseModel):
    orders: List[OrderSummaryResponse]


class OrderDetailEnvelope(BaseModel):
    order: OrderDetailResponse


# Suppliers
class SupplierResponse(BaseModel):
    id: str
    name: str
    displayName: str
    type: str
    isActive: bool
    syncStatus: str
    lastSyncAt: Optional[datetime] = None
    lastError: Optional[str] = None
    productCount: int = 0


class SupplierListResponse(BaseModel):
    suppliers: List[SupplierResponse]


# Analytics
class SupplierShare(BaseModel):
    name: str
    displayName: str
    orders: int
    revenue: float
    percentage: int


class AnalyticsOverviewResponse(BaseModel):
    totalProducts: int
    importedProducts: int
    totalOrders: int
    totalRevenue: float
    supplierStats: List[SupplierShare]
    lowStockCount: int
    outOfStockCount: int
