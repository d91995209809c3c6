"""Payment Rail - renders PIX payment codes for charges.

For MVP: Provides both a real OpenPix integration and a simulated mode
for testing without a payment provider account.

In simulation mode, builds a BR-code-shaped payload locally.
In production mode, creates the charge on OpenPix and returns its brCode.
The correlation id of the charge is the idempotency key on both sides.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from work_settlement.domain.collaborators import PaymentCode
from work_settlement.domain.enums import ChargeStatus
from work_settlement.domain.exceptions import PaymentRailError
from work_settlement.logging_config import get_logger

if TYPE_CHECKING:
    from work_settlement.config import Settings
    from work_settlement.domain.collaborators import ChargeRequest

logger = get_logger(__name__)

_OPENPIX_STATUS = {
    "ACTIVE": ChargeStatus.PENDING,
    "COMPLETED": ChargeStatus.PAID,
    "EXPIRED": ChargeStatus.EXPIRED,
}


def build_simulated_brcode(
    correlation_id: str,
    value_minor_units: int,
    receiver_name: str,
    description: str,
) -> str:
    """Build a BR-code-like payload. Not a valid EMV code; good enough to copy around."""
    reais, centavos = divmod(value_minor_units, 100)
    value = f"{reais}.{centavos:02d}"
    return (
        "00020126580014br.gov.bcb.pix0136"
        f"{correlation_id}"
        "52040000530398654"
        f"{len(value):02d}{value}"
        "5802BR5925"
        f"{receiver_name[:25]:<25}"
        "6008URUARA6226"
        f"{description[:50]}"
        "63041234"
    )


class PixRail:
    """PIX payment rail, simulated or backed by the OpenPix API."""

    def __init__(
        self,
        simulate: bool = True,
        app_id: str = "",
        api_url: str = "https://api.openpix.com.br/api/v1",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the rail.

        Args:
            simulate: If True, render codes locally instead of calling OpenPix.
            app_id: OpenPix application id (sent as the Authorization header).
            api_url: OpenPix API base URL.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self._simulate = simulate
        self._app_id = app_id
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> PixRail:
        return cls(
            simulate=settings.payment_rail_simulate,
            app_id=settings.openpix_app_id,
            api_url=settings.openpix_api_url,
            timeout=settings.openpix_timeout_seconds,
        )

    async def render(self, request: ChargeRequest) -> PaymentCode:
        """Return the copy-and-paste code for a charge."""
        if self._simulate:
            payload = build_simulated_brcode(
                correlation_id=request.correlation_id,
                value_minor_units=request.value_minor_units,
                receiver_name=request.receiver_name or request.receiver_id,
                description=request.description,
            )
            logger.info(
                "payment_rail.code_rendered",
                correlation_id=request.correlation_id,
                value=request.value_minor_units,
                simulated=True,
            )
            return PaymentCode(
                correlation_id=request.correlation_id,
                payload=payload,
                value_minor_units=request.value_minor_units,
                expires_at=request.expires_at,
            )

        body = {
            "correlationID": request.correlation_id,
            "value": request.value_minor_units,
            "comment": request.description,
        }
        if request.receiver_name:
            body["customer"] = {"name": request.receiver_name}

        data = await self._request("POST", "/charge", request.correlation_id, json=body)
        charge = data.get("charge") or {}
        br_code = charge.get("brCode") or data.get("brCode")
        if not br_code:
            raise PaymentRailError(
                "OpenPix response did not include a brCode",
                correlation_id=request.correlation_id,
            )

        logger.info(
            "payment_rail.code_rendered",
            correlation_id=request.correlation_id,
            value=request.value_minor_units,
            receiver_pix_key=request.receiver_pix_key,
            simulated=False,
        )
        return PaymentCode(
            correlation_id=request.correlation_id,
            payload=br_code,
            value_minor_units=request.value_minor_units,
            expires_at=request.expires_at,
            raw=charge,
        )

    async def fetch_status(self, correlation_id: str) -> str | None:
        """Ask OpenPix for the charge status. Simulated charges have no remote state."""
        if self._simulate:
            return None
        data = await self._request("GET", f"/charge/{correlation_id}", correlation_id)
        remote = (data.get("charge") or {}).get("status")
        status = _OPENPIX_STATUS.get(remote, ChargeStatus.PENDING)
        logger.info(
            "payment_rail.status_fetched",
            correlation_id=correlation_id,
            remote_status=remote,
            status=status.value,
        )
        return status.value

    async def _request(self, method: str, path: str, correlation_id: str, **kwargs) -> dict:  # noqa: ANN003
        if not self._app_id:
            raise PaymentRailError("OPENPIX_APP_ID is not configured", correlation_id=correlation_id)

        async with httpx.AsyncClient(
            base_url=self._api_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": self._app_id},
        ) as client:
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
            except httpx.HTTPStatusError as err:
                message = _error_message(err.response)
                logger.warning(
                    "payment_rail.rejected",
                    correlation_id=correlation_id,
                    status_code=err.response.status_code,
                    error=message,
                )
                raise PaymentRailError(message, correlation_id=correlation_id) from err
            except httpx.HTTPError as err:
                logger.warning(
                    "payment_rail.unreachable",
                    correlation_id=correlation_id,
                    error=str(err),
                )
                raise PaymentRailError(
                    f"Payment rail unreachable: {err}", correlation_id=correlation_id
                ) from err
            return response.json()


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.text
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
