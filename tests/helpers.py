from sqlalchemy import func, select

from services.order_service.models import Order
from services.payment_service.gateway import PaymentHandle
from shared.config.database import AsyncSessionLocal
from shared.errors import GatewayError
from shared.security import create_access_token

INTERNAL_HEADERS = {"X-Internal-API-Key": "test-internal-key"}


class FakeGateway:
    """Stands in for the hosted payment page provider."""
    name = "fake"

    def __init__(self):
        self.initiated = []
        self.verifications = {}
        self.failures = 0

    async def initiate_payment(self, order_id, amount, currency, customer_name="", customer_email=""):
        if self.failures:
            self.failures -= 1
            raise GatewayError("Payment gateway timed out. Please try again later.", order_id=order_id)
        self.initiated.append({"order_id": order_id, "amount": amount, "currency": currency})
        reference = f"inv-{order_id}-{len(self.initiated)}"
        return PaymentHandle(payment_url=f"https://pay.example/{reference}", gateway_reference=reference)

    async def verify_payment(self, key, key_type="InvoiceId"):
        if key not in self.verifications:
            raise GatewayError("Invalid key for this payment.", payment_key=key)
        return self.verifications[key]


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


async def fetch(model, pk):
    async with AsyncSessionLocal() as session:
        return await session.get(model, pk)


async def count(model, *criteria):
    async with AsyncSessionLocal() as session:
        return await session.scalar(select(func.count()).select_from(model).where(*criteria))


async def orders_for(user_id):
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Order).where(Order.user_id == user_id).order_by(Order.id))
        return list(result.scalars().all())
