"""Servicio de integración con Stripe Checkout"""
from typing import Dict, List, Optional
import logging

import stripe
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from shared.utils.exceptions import ConfigurationError, ExternalServiceError
from shared.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class StripeService:
    """Servicio para crear y consultar sesiones de Stripe Checkout"""

    def __init__(self, api_key: Optional[str] = None):
        api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        if not api_key:
            logger.error("STRIPE_SECRET_KEY no configurado")
            raise ConfigurationError("Payment processing is not configured")

        self.api_key = api_key
        self.currency = settings.STRIPE_CURRENCY

    async def find_customer_id(self, email: str) -> Optional[str]:
        """Buscar customer existente por email (lectura, se reintenta)"""
        async def list_customers():
            return await run_in_threadpool(stripe.Customer.list, email=email, limit=1, api_key=self.api_key)

        try:
            customers = await retry_with_backoff(
                list_customers,
                max_retries=2,
                initial_delay=0.5,
                exceptions=(stripe.APIConnectionError, stripe.RateLimitError),
            )
        except stripe.StripeError as e:
            logger.error(f"Error buscando customer en Stripe: {e}")
            raise ExternalServiceError("Payment provider error") from e

        if customers.data:
            customer_id = customers.data[0].id
            logger.info(f"Customer existente encontrado: {customer_id}")
            return customer_id
        return None

    async def create_checkout_session(
        self,
        email: str,
        line_items: List[Dict],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> stripe.checkout.Session:
        """
        Crear sesión de pago único.

        Reutiliza el customer si existe; si no, Stripe lo crea a partir de customer_email.
        """
        customer_id = await self.find_customer_id(email)

        session_data = dict(
            line_items=line_items,
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            api_key=self.api_key,
        )
        if customer_id:
            session_data["customer"] = customer_id
        else:
            session_data["customer_email"] = email

        try:
            session = await run_in_threadpool(lambda: stripe.checkout.Session.create(**session_data))
        except stripe.StripeError as e:
            logger.error(f"Error creando sesión de Stripe: {e}")
            raise ExternalServiceError(f"Payment provider error: {e.user_message or 'checkout unavailable'}") from e

        if not getattr(session, "url", None):
            raise ExternalServiceError("Payment provider did not return a checkout URL")

        logger.info(f"Sesión de Stripe creada: {session.id}")
        return session

    async def retrieve_session(self, session_id: str) -> stripe.checkout.Session:
        try:
            return await run_in_threadpool(
                lambda: stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
            )
        except stripe.InvalidRequestError as e:
            raise ExternalServiceError(f"Checkout session not found: {session_id}", status_code=400) from e
        except stripe.StripeError as e:
            logger.error(f"Error consultando sesión {session_id}: {e}")
            raise ExternalServiceError("Payment provider error") from e

    async def list_checkout_sessions(self, customer_id: Optional[str] = None, limit: int = 100) -> List:
        """Últimas sesiones de checkout, del customer si se indica (lectura, se reintenta)"""
        params = {"limit": limit, "api_key": self.api_key}
        if customer_id:
            params["customer"] = customer_id

        async def list_sessions():
            return await run_in_threadpool(lambda: stripe.checkout.Session.list(**params))

        try:
            sessions = await retry_with_backoff(
                list_sessions,
                max_retries=2,
                initial_delay=0.5,
                exceptions=(stripe.APIConnectionError, stripe.RateLimitError),
            )
        except stripe.StripeError as e:
            logger.error(f"Error listando sesiones de Stripe: {e}")
            raise ExternalServiceError("Payment provider error") from e

        return list(sessions.data)

    def ticket_line_item(self, amount: int) -> Dict:
        return {
            "price_data": {
                "currency": self.currency,
                "product_data": {
                    "name": "SkateBurn Event Ticket",
                    "description": "Sliding scale donation ticket for skate events",
                },
                "unit_amount": amount,
            },
            "quantity": 1,
        }
