"""
Client for the hosted payment provider (MyFatoorah v2 API).

Only two calls are used: SendPayment creates an invoice and returns the URL the
customer pays at, getPaymentStatus reports what happened to it. Every call has
a bounded timeout; anything other than a clean success becomes GatewayError.
"""
import time
from decimal import Decimal
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel

from shared.config import settings
from shared.errors import GatewayError
from shared.observability import ecomm_gateway_request_duration_seconds

logger = structlog.get_logger(__name__)

PAID = "Paid"


class PaymentHandle(BaseModel):
    payment_url: str
    gateway_reference: str


class PaymentVerification(BaseModel):
    status: str
    gateway_reference: Optional[str] = None
    transaction_id: Optional[str] = None
    message: Optional[str] = None
    raw_details: dict[str, Any] = {}

    @property
    def is_paid(self) -> bool:
        return self.status == PAID


class PaymentGatewayClient:
    name = "myfatoorah"

    def __init__(
        self,
        base_url: str = settings.PAYMENT_GATEWAY_BASE_URL,
        api_key: str = settings.PAYMENT_GATEWAY_API_KEY,
        timeout: float = settings.PAYMENT_GATEWAY_TIMEOUT,
        callback_base_url: str = settings.APP_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.callback_base_url = callback_base_url.rstrip("/")
        self._transport = transport

    async def initiate_payment(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        customer_name: str = "",
        customer_email: str = "",
    ) -> PaymentHandle:
        payload = {
            "CustomerName": customer_name,
            "CustomerEmail": customer_email,
            "InvoiceValue": float(amount),
            "DisplayCurrencyIso": currency,
            "CallBackUrl": f"{self.callback_base_url}/payment/callback/{order_id}",
            "ErrorUrl": f"{self.callback_base_url}/payment/error/{order_id}",
            "Language": "en",
            "CustomerReference": str(order_id),
            "NotificationOption": "LNK",
            "UserDefinedField": str(order_id),
        }
        data = await self._post("/v2/SendPayment", payload, operation="initiate", order_id=order_id)

        invoice = data.get("Data") or {}
        if not invoice.get("InvoiceURL") or invoice.get("InvoiceId") is None:
            logger.error("gateway_missing_invoice", order_id=order_id, response=data)
            raise GatewayError("Failed to get payment URL from the payment gateway.", order_id=order_id)

        return PaymentHandle(
            payment_url=invoice["InvoiceURL"],
            gateway_reference=str(invoice["InvoiceId"]),
        )

    async def verify_payment(self, key: str, key_type: str = "InvoiceId") -> PaymentVerification:
        """Ask the gateway for the authoritative status of an invoice (or of one payment attempt)."""
        data = await self._post(
            "/v2/getPaymentStatus",
            {"Key": key, "KeyType": key_type},
            operation="verify",
            payment_key=key,
        )
        invoice = data.get("Data") or {}
        transactions = invoice.get("InvoiceTransactions") or []

        transaction_id = key if key_type == "PaymentId" else None
        if transactions:
            last = transactions[-1]
            transaction_id = last.get("PaymentId") or last.get("TransactionId") or transaction_id

        reference = invoice.get("InvoiceId")
        return PaymentVerification(
            status=invoice.get("InvoiceStatus") or "Unknown",
            gateway_reference=str(reference) if reference is not None else None,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            message=data.get("Message"),
            raw_details=data,
        )

    async def _post(self, path: str, payload: dict, operation: str, **context) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}{path}", json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error("gateway_timeout", operation=operation, **context)
            raise GatewayError("Payment gateway timed out. Please try again later.", **context) from exc
        except httpx.HTTPError as exc:
            logger.error("gateway_unreachable", operation=operation, error=str(exc), **context)
            raise GatewayError("Payment service unavailable. Please try again later.", **context) from exc
        finally:
            ecomm_gateway_request_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - started
            )

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if not resp.is_success or not data.get("IsSuccess", False):
            logger.error(
                "gateway_error_response",
                operation=operation,
                status=resp.status_code,
                response=data,
                **context,
            )
            raise GatewayError(data.get("Message") or "Payment gateway rejected the request.", **context)
        return data


_gateway = PaymentGatewayClient()


def get_payment_gateway() -> PaymentGatewayClient:
    return _gateway
