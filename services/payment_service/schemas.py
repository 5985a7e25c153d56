from pydantic import BaseModel


class PaymentCallbackResponse(BaseModel):
    message: str
    order_id: int
    status: str
