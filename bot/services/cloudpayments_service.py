import base64
import hashlib
import hmac
import logging
import time
from typing import Mapping, Optional

import aiohttp

from config.settings import Settings
from bot.services.payment_reconciler import ACCEPTED_STATUSES
from bot.services.subscription.errors import PaymentGatewayError
from db.models import SubscriptionPlan

SIGNATURE_HEADERS = ("Content-HMAC", "X-Content-HMAC")


def build_invoice_id(user_id: int, plan_id: str, now_ms: Optional[int] = None) -> str:
    """Invoice id "{userId}_{planId}_{epochMs}", parsed back by the reconciler."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{user_id}_{plan_id}_{now_ms}"


class CloudPaymentsService:
    """
    CloudPayments API client.

    Creates payment links (orders) and verifies transactions and webhook
    signatures. The HTTP session is created lazily and closed on shutdown.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.public_id = settings.CLOUDPAYMENTS_PUBLIC_ID or ""
        self.api_secret = settings.CLOUDPAYMENTS_API_SECRET or ""
        self.return_url = settings.CLOUDPAYMENTS_RETURN_URL or ""
        self.api_url = settings.CLOUDPAYMENTS_API_URL.rstrip("/")
        self.configured = settings.cloudpayments_configured
        self._session: Optional[aiohttp.ClientSession] = None

        if not self.configured:
            logging.warning("CloudPayments credentials not provided. Payment links disabled")
        if not self.return_url:
            logging.warning(
                "CLOUDPAYMENTS_RETURN_URL not set - point it to <server>/payment/success"
            )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                auth=aiohttp.BasicAuth(self.public_id, self.api_secret),
                timeout=aiohttp.ClientTimeout(total=30),
            )
        return self._session

    async def close(self):
        """Close underlying aiohttp session if initialized."""
        if self._session and not self._session.closed:
            try:
                await self._session.close()
                logging.info("CloudPayments client session closed.")
            except Exception as e:
                logging.warning(f"Failed to close CloudPayments client: {e}")
        self._session = None

    async def create_payment_link(self, user_id: int, plan: SubscriptionPlan, chat_id: int) -> str:
        """
        Create a CloudPayments order and return its payment page URL.

        Args:
            user_id: Telegram user ID (AccountId)
            plan: Purchased plan
            chat_id: Chat to notify after payment

        Returns:
            Payment page URL

        Raises:
            PaymentGatewayError: gateway not configured, unreachable or refused the order
        """
        if not self.configured:
            raise PaymentGatewayError("CloudPayments is not configured")

        invoice_id = build_invoice_id(user_id, plan.id)
        body = {
            "Amount": plan.price,
            "Currency": plan.currency,
            "Description": f"Подписка \"{plan.name}\" - Элемент успеха",
            "AccountId": str(user_id),
            "InvoiceId": invoice_id,
            "JsonData": {
                "userId": str(user_id),
                "chatId": str(chat_id),
                "planId": plan.id,
            },
            "SuccessRedirectUrl": self.return_url,
            "FailRedirectUrl": self.return_url,
        }

        try:
            async with self._get_session().post(f"{self.api_url}/orders/create", json=body) as response:
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as e:
            logging.error(f"CloudPayments order creation failed for user {user_id}: {e}", exc_info=True)
            raise PaymentGatewayError(f"CloudPayments request failed: {e}") from e

        model = data.get("Model") if isinstance(data, dict) else None
        if not (isinstance(data, dict) and data.get("Success") and isinstance(model, dict) and model.get("Url")):
            message = data.get("Message") if isinstance(data, dict) else None
            logging.error(f"CloudPayments refused order {invoice_id}: {data}")
            raise PaymentGatewayError(message or "CloudPayments order was not created")

        logging.info(f"CloudPayments payment link created for user {user_id}: invoice={invoice_id}")
        return model["Url"]

    async def verify_payment(self, transaction_id: str) -> bool:
        """
        Check the transaction status directly with CloudPayments.

        Args:
            transaction_id: CloudPayments TransactionId

        Returns:
            True if the transaction is Completed or Authorized
        """
        if not self.configured:
            logging.error("CloudPayments verification requested but service not configured")
            return False

        try:
            async with self._get_session().post(
                f"{self.api_url}/payments/get",
                json={"TransactionId": transaction_id},
            ) as response:
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as e:
            logging.error(f"CloudPayments verification of {transaction_id} failed: {e}")
            return False

        if not isinstance(data, dict) or not data.get("Success"):
            logging.warning(f"CloudPayments verification of {transaction_id} unsuccessful: {data}")
            return False

        status = (data.get("Model") or {}).get("Status")
        return status in ACCEPTED_STATUSES

    def verify_signature(self, body: bytes, headers: Mapping[str, str]) -> bool:
        """
        Verify a webhook HMAC signature.

        Args:
            body: Raw request body
            headers: Request headers

        Returns:
            True if Content-HMAC (or X-Content-HMAC) matches HMAC-SHA256 of the body
        """
        if not self.api_secret:
            logging.error("SECURITY: CloudPayments signature check requested without API secret")
            return False

        signature = None
        for header in SIGNATURE_HEADERS:
            signature = headers.get(header)
            if signature:
                break
        if not signature:
            logging.warning("SECURITY: CloudPayments webhook without HMAC header")
            return False

        digest = hmac.new(self.api_secret.encode("utf-8"), body, hashlib.sha256).digest()
        expected = base64.b64encode(digest)
        return hmac.compare_digest(expected, signature.strip().encode("utf-8", "ignore"))
