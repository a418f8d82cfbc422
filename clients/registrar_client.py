"""
Registrar API client (GoDaddy-compatible REST surface).

Every call carries a fixed timeout. Transport failures, timeouts and non-2xx
responses all raise RegistrarError; the job queue decides whether to retry.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import requests
from pydantic import BaseModel, Field

from core.errors import ExternalServiceError
from core.models.domain import DnsRecord

logger = logging.getLogger(__name__)


class RegistrarError(ExternalServiceError):
    """Raised when a registrar request fails."""

    service = "registrar"


class Contact(BaseModel):
    """Registrant contact sent with registrations and transfers."""

    first_name: str
    last_name: str
    email: str
    phone: str = "+1.0000000000"
    organization: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    country: str = "US"
    postal_code: str = ""

    def to_api(self) -> dict[str, Any]:
        return {
            "nameFirst": self.first_name,
            "nameLast": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "organization": self.organization,
            "addressMailing": {
                "address1": self.street,
                "city": self.city,
                "state": self.state,
                "country": self.country,
                "postalCode": self.postal_code,
            },
        }


class RegistrationRequest(BaseModel):
    domain: str
    years: int = Field(1, ge=1, le=10)
    nameservers: list[str] = Field(default_factory=list)
    auto_renew: bool = True
    privacy: bool = True
    contact: Contact


class RegistrationResult(BaseModel):
    order_id: str
    expires: datetime | None = None


class RenewalResult(BaseModel):
    order_id: str
    total_cents: int | None = None


class TransferRequest(BaseModel):
    domain: str
    auth_code: str
    years: int = 1
    privacy: bool = True
    contact: Contact


class TransferStatus(BaseModel):
    status: str
    reason: str | None = None


def dollars_to_cents(value: Any) -> int:
    """Convert a registrar decimal-dollar price to integer cents."""
    return int((Decimal(str(value)) * 100).quantize(Decimal("1")))


class RegistrarClient:
    """
    Registrar REST client.

    Usage:
        registrar = RegistrarClient(base_url, api_key, api_secret, timeout=30)
        result = registrar.register_domain(RegistrationRequest(...))
    """

    def __init__(self, base_url: str, api_key: str, api_secret: str, timeout: float = 30):
        """
        Raises:
            ValueError: If any credential is empty
        """
        if not base_url:
            raise ValueError("base_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not api_secret:
            raise ValueError("api_secret is required")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {
            "Authorization": f"sso-key {api_key}:{api_secret}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send a request and return decoded JSON (None for empty bodies).

        Raises:
            RegistrarError: On connection failure, timeout or non-2xx status
        """
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method, url, headers=self._headers, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Registrar timeout on {method} {path}: {e}")
            raise RegistrarError(f"Timeout calling {path}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Registrar connection failed on {method} {path}: {e}")
            raise RegistrarError(f"Connection failed: {e}")

        if not response.ok:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            logger.error(f"Registrar error {response.status_code} on {method} {path}: {message}")
            raise RegistrarError(
                f"Registrar error {response.status_code}: {message}",
                retryable=response.status_code >= 500 or response.status_code == 429,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise RegistrarError(f"Invalid JSON from registrar on {path}")

    def check_availability(self, domain: str) -> bool:
        data = self._request("GET", "/v1/domains/available", params={"domain": domain})
        return bool(data.get("available"))

    def get_renewal_price_cents(self, tld: str) -> int:
        """Current one-year renewal price for a TLD, in cents."""
        clean_tld = tld.lstrip(".")
        data = self._request("GET", f"/v1/domains/tlds/{clean_tld}")
        price = (data.get("prices") or {}).get("renewal", {}).get("price")
        if price is None:
            raise RegistrarError(f"No renewal price published for .{clean_tld}", retryable=False)
        return dollars_to_cents(price)

    def register_domain(self, request: RegistrationRequest) -> RegistrationResult:
        contact = request.contact.to_api()
        body = {
            "domain": request.domain,
            "period": request.years,
            "renewAuto": request.auto_renew,
            "privacy": request.privacy,
            "contactRegistrant": contact,
            "contactAdmin": contact,
            "contactBilling": contact,
            "contactTech": contact,
        }
        if request.nameservers:
            body["nameServers"] = request.nameservers

        data = self._request("POST", "/v1/domains/purchase", json=body)
        logger.info(f"Registrar accepted registration of {request.domain}")
        return RegistrationResult(order_id=str(data["orderId"]), expires=data.get("expires"))

    def renew_domain(self, domain: str, years: int) -> RenewalResult:
        data = self._request("POST", f"/v1/domains/{domain}/renew", json={"period": years})
        total = data.get("total")
        return RenewalResult(
            order_id=str(data["orderId"]),
            total_cents=dollars_to_cents(total) if total is not None else None,
        )

    def initiate_transfer(self, request: TransferRequest) -> str:
        """Start an inbound transfer. Returns the registrar order id."""
        body = {
            "domain": request.domain,
            "authCode": request.auth_code,
            "period": request.years,
            "privacy": request.privacy,
            "contactRegistrant": request.contact.to_api(),
        }
        data = self._request("POST", "/v1/domains/transfers", json=body)
        return str(data["orderId"])

    def get_transfer_status(self, domain: str) -> TransferStatus:
        data = self._request("GET", f"/v1/domains/{domain}/transfer") or {}
        return TransferStatus(
            status=str(data.get("status") or "unknown").lower(),
            reason=data.get("reason"),
        )

    def list_dns_records(self, domain: str) -> list[DnsRecord]:
        data = self._request("GET", f"/v1/domains/{domain}/records") or []
        return [DnsRecord.model_validate(record) for record in data]

    def upsert_dns_record(self, domain: str, record: DnsRecord) -> None:
        self._request(
            "PUT",
            f"/v1/domains/{domain}/records/{record.type}/{record.name}",
            json=[record.model_dump(exclude={"type", "name"})],
        )

    def delete_dns_record(self, domain: str, record_type: str, name: str) -> None:
        self._request("DELETE", f"/v1/domains/{domain}/records/{record_type}/{name}")
