"""Payments API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.api.core.messages import APIResponse, Paginated


class CreditPackageModel(BaseModel):
    package_id: str
    name: str
    credits: int
    price: int

    model_config = {"from_attributes": True}


class PrepareOrderRequest(BaseModel):
    package_id: str = Field(min_length=1, max_length=50)


class OrderModel(BaseModel):
    order_id: str
    package_id: str
    order_name: str
    expected_amount: int
    credits: int
    status: str
    payment_method: str | None = None
    failure_reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PreparedOrderModel(OrderModel):
    # Publishable key the client needs to open the gateway's payment window
    client_key: str


class ConfirmOrderRequest(BaseModel):
    order_id: str = Field(min_length=1, max_length=100)
    payment_key: str = Field(min_length=1, max_length=200)
    amount: int


class FailOrderRequest(BaseModel):
    order_id: str = Field(min_length=1, max_length=100)
    code: str | None = None
    reason: str = Field(default="payment failed", max_length=500)


class ConfirmOutcomeModel(BaseModel):
    order_id: str
    credits_granted: int
    balance: int
    transaction_id: str
    replayed: bool

    model_config = {"from_attributes": True}


class WebhookPaymentData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    payment_key: str = Field(alias="paymentKey")
    order_id: str = Field(alias="orderId")
    status: str
    total_amount: int = Field(default=0, alias="totalAmount")
    method: str | None = None


class PaymentWebhookEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_type: str = Field(alias="eventType")
    data: WebhookPaymentData


class WebhookResultModel(BaseModel):
    order_id: str
    status: str
    applied: bool


CreditPackagesResponse = APIResponse[list[CreditPackageModel]]
PreparedOrderResponse = APIResponse[PreparedOrderModel]
OrderResponse = APIResponse[OrderModel]
OrderHistoryResponse = APIResponse[Paginated[OrderModel]]
ConfirmOrderResponse = APIResponse[ConfirmOutcomeModel]
WebhookResponse = APIResponse[WebhookResultModel]
