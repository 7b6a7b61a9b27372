"""
Mock payment gateway.

Issues a transaction reference for every payment it is asked to start.
The real gateway would create a hosted checkout and later call back
``POST /api/v1/payments/callback`` with the outcome.
"""

from __future__ import annotations

import logging
import secrets
import time

from src.domain.ports import PaymentGatewayError

logger = logging.getLogger(__name__)


class MockPaymentGateway:
    def __init__(self, prefix: str = "PTG"):
        self.prefix = prefix
        self.initiated: dict[str, tuple[str, float]] = {}

    async def initiate_payment(self, ride_id: str, amount: float) -> str:
        if amount <= 0:
            raise PaymentGatewayError(f"Refusing to charge {amount} for ride {ride_id}")
        tx_ref = f"{self.prefix}_TX_{int(time.time() * 1000)}_{secrets.randbelow(10_000)}"
        while tx_ref in self.initiated:
            tx_ref = f"{self.prefix}_TX_{int(time.time() * 1000)}_{secrets.randbelow(10_000)}"
        self.initiated[tx_ref] = (ride_id, amount)
        logger.info("Payment initiated for ride %s: %s (%.2f)", ride_id, tx_ref, amount)
        return tx_ref
