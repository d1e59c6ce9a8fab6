"""Stripe Connect gateway for worker payouts.

Talks to the Stripe REST API directly with httpx (form-encoded requests,
bearer secret key). Amounts are in minor units on both sides.
"""

import logging

import httpx

from nimmit.errors import ExternalServiceError
from nimmit.payouts.gateway import AccountStatus, Balance, Transfer

logger = logging.getLogger("nimmit.payments.stripe")

STRIPE_API_BASE = "https://api.stripe.com/v1"


class StripeConnectGateway:
    """Transfers to connected accounts, account readiness and platform balance."""

    def __init__(
        self,
        secret_key: str,
        api_base: str = STRIPE_API_BASE,
        currency: str = "usd",
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        if not secret_key:
            raise ValueError("STRIPE_SECRET_KEY must be set for payouts")
        self.currency = currency.lower()
        self._client = client or httpx.Client(timeout=timeout)
        self._api_base = api_base.rstrip("/")
        self._headers = {"Authorization": f"Bearer {secret_key}"}

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = self._client.request(
                method, f"{self._api_base}{path}", headers=headers, **kwargs
            )
        except httpx.HTTPError as e:
            logger.error(f"Stripe request failed | {method} {path} | error={e}")
            # A request that never connected cannot have reached Stripe
            sent = not isinstance(e, (httpx.ConnectError, httpx.ConnectTimeout))
            raise ExternalServiceError(
                "stripe", f"Stripe request failed: {e}", outcome_unknown=sent
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            message = (body.get("error") or {}).get("message") or response.text[:200]
            logger.error(
                f"Stripe error | {method} {path} | status={response.status_code} | {message}"
            )
            raise ExternalServiceError(
                "stripe", message, outcome_unknown=response.status_code >= 500
            )
        return body

    def transfer(
        self,
        destination: str,
        amount_minor_units: int,
        reference: str,
        description: str,
        idempotency_key: str | None = None,
    ) -> Transfer:
        if amount_minor_units <= 0:
            raise ValueError("Transfer amount must be positive")
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        body = self._request(
            "POST",
            "/transfers",
            data={
                "amount": amount_minor_units,
                "currency": self.currency,
                "destination": destination,
                "transfer_group": reference,
                "description": description,
                "metadata[type]": reference,
            },
            headers=headers,
        )
        logger.info(
            f"Stripe transfer created | id={body['id']} | destination={destination} "
            f"| amount={amount_minor_units}"
        )
        return Transfer(
            transfer_id=body["id"],
            amount_minor_units=body.get("amount", amount_minor_units),
            destination=body.get("destination", destination),
        )

    def account_status(self, destination: str) -> AccountStatus:
        body = self._request("GET", f"/accounts/{destination}")
        return AccountStatus(
            payouts_enabled=bool(body.get("payouts_enabled")),
            details_submitted=bool(body.get("details_submitted")),
        )

    def platform_balance(self) -> Balance:
        """Platform balance in the payout currency."""
        body = self._request("GET", "/balance")

        def total(entries) -> int:
            return sum(
                e.get("amount", 0) for e in entries or [] if e.get("currency") == self.currency
            )

        return Balance(available=total(body.get("available")), pending=total(body.get("pending")))
