"""Amazon Product Advertising API 5.0 client (SearchItems only).

Requests are signed with AWS Signature Version 4. Only the input/output
shape matters to the rest of the pipeline: a keyword query goes in, a list
of ProductCandidate comes out.
"""

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ketogo.core.errors import ConfigurationError, PAAPIError
from ketogo.core.logging import get_logger
from ketogo.core.settings import Settings
from ketogo.curation.models import ProductCandidate

logger = get_logger(__name__)

SERVICE = "ProductAdvertisingAPI"
TARGET = "com.amazon.paapi5.v1.ProductAdvertisingAPIv1.SearchItems"
ENDPOINT = "/paapi5/searchitems"
ALGORITHM = "AWS4-HMAC-SHA256"
SIGNED_HEADERS = "content-encoding;content-type;host;x-amz-date;x-amz-target"
CONTENT_TYPE = "application/json; charset=utf-8"

SEARCH_RESOURCES = [
    "ItemInfo.Title",
    "ItemInfo.ByLineInfo",
    "ItemInfo.Features",
    "Offers.Listings.Price",
    "Images.Primary.Medium",
]


def _sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def signing_key(secret_key: str, date_stamp: str, region: str, service: str = SERVICE) -> bytes:
    """Derive the SigV4 signing key for one day/region/service scope."""
    k_date = _hmac(("AWS4" + secret_key).encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "aws4_request")


def sign_request(
    body: str,
    access_key: str,
    secret_key: str,
    host: str,
    region: str,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """
    Headers for a signed SearchItems POST.

    Args:
        body: Exact JSON body that will be sent
        access_key: PA-API access key
        secret_key: PA-API secret key
        host: API host, e.g. ``webservices.amazon.it``
        region: AWS region of the marketplace, e.g. ``eu-west-1``
        now: Signing time (UTC), defaults to the current time

    Returns:
        Request headers including ``Authorization``
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    date_stamp = amz_date[:8]

    canonical_headers = (
        f"content-encoding:amz-1.0\n"
        f"content-type:{CONTENT_TYPE}\n"
        f"host:{host}\n"
        f"x-amz-date:{amz_date}\n"
        f"x-amz-target:{TARGET}\n"
    )
    canonical_request = "\n".join([
        "POST",
        ENDPOINT,
        "",
        canonical_headers,
        SIGNED_HEADERS,
        _sha256_hex(body),
    ])

    credential_scope = f"{date_stamp}/{region}/{SERVICE}/aws4_request"
    string_to_sign = "\n".join([ALGORITHM, amz_date, credential_scope, _sha256_hex(canonical_request)])
    signature = hmac.new(
        signing_key(secret_key, date_stamp, region), string_to_sign.encode("utf-8"), hashlib.sha256
    ).hexdigest()

    return {
        "content-encoding": "amz-1.0",
        "content-type": CONTENT_TYPE,
        "host": host,
        "x-amz-date": amz_date,
        "x-amz-target": TARGET,
        "Authorization": (
            f"{ALGORITHM} Credential={access_key}/{credential_scope}, "
            f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
        ),
    }


def _dig(data: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(key, int):
            if not isinstance(data, list) or len(data) <= key:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[key] if isinstance(key, int) else data.get(key)
    return data


class PAAPIClient:
    """SearchItems client for one marketplace."""

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        partner_tag: str,
        host: str = "webservices.amazon.it",
        region: str = "eu-west-1",
        marketplace: str = "www.amazon.it",
        timeout: float = 25.0,
        item_count: int = 10,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not (access_key and secret_key and partner_tag):
            raise ConfigurationError("PA-API access key, secret key and partner tag are required")

        self.access_key = access_key
        self.secret_key = secret_key
        self.partner_tag = partner_tag
        self.host = host
        self.region = region
        self.marketplace = marketplace
        self.item_count = item_count
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "PAAPIClient":
        return cls(
            access_key=settings.amazon_paapi_access_key,
            secret_key=settings.amazon_paapi_secret_key,
            partner_tag=settings.amazon_paapi_partner_tag,
            host=settings.amazon_paapi_host,
            region=settings.amazon_paapi_region,
            marketplace=settings.amazon_marketplace,
            timeout=settings.amazon_timeout,
            client=client,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def build_body(self, keywords: str) -> Dict[str, Any]:
        return {
            "Keywords": keywords,
            "Marketplace": self.marketplace,
            "PartnerTag": self.partner_tag,
            "PartnerType": "Associates",
            "ItemCount": self.item_count,
            "Resources": SEARCH_RESOURCES,
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1.0, min=1.0, max=8.0),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True
    )
    async def _post(self, body: str) -> httpx.Response:
        headers = sign_request(body, self.access_key, self.secret_key, self.host, self.region)
        return await self.client.post(f"https://{self.host}{ENDPOINT}", content=body.encode("utf-8"), headers=headers)

    async def search_items(self, keywords: str) -> List[ProductCandidate]:
        """
        Search the marketplace.

        Raises:
            PAAPIError: on transport errors, non-2xx responses or unreadable payloads
        """
        body = json.dumps(self.build_body(keywords))

        try:
            response = await self._post(body)
        except httpx.TimeoutException as e:
            raise PAAPIError(f"PA-API timeout for '{keywords}'") from e
        except httpx.RequestError as e:
            raise PAAPIError(f"PA-API request error for '{keywords}': {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise PAAPIError(f"PA-API parse error: {e}", response.status_code) from e

        if not 200 <= response.status_code < 300:
            raise PAAPIError(f"PA-API {response.status_code}: {response.text[:400]}", response.status_code)

        return self.parse_items(payload)

    def parse_items(self, payload: Dict[str, Any]) -> List[ProductCandidate]:
        """
        Product candidates from a SearchItems response.

        Items without an ASIN, or with fields of the wrong shape, are logged
        and dropped; one malformed item never fails the whole search.
        """
        items = _dig(payload, "SearchResult", "Items")
        if not isinstance(items, list):
            return []

        products = []
        for item in items:
            asin = _dig(item, "ASIN")
            if not isinstance(asin, str) or not asin.strip():
                logger.warning(f"Skipping PA-API item without usable ASIN: {str(item)[:120]}")
                continue

            title = _dig(item, "ItemInfo", "Title", "DisplayValue")
            amount = _dig(item, "Offers", "Listings", 0, "Price", "Amount")
            price = float(amount) if isinstance(amount, (int, float)) and not isinstance(amount, bool) else None

            try:
                products.append(ProductCandidate(
                    asin=asin,
                    title=title.strip() if isinstance(title, str) else "",
                    price=price,
                    currency=_dig(item, "Offers", "Listings", 0, "Price", "Currency") or "EUR",
                    image=_dig(item, "Images", "Primary", "Medium", "URL"),
                    detail_url=_dig(item, "DetailPageURL") or f"https://{self.marketplace}/dp/{asin}/?tag={self.partner_tag}",
                ))
            except ValidationError as e:
                logger.warning(f"Skipping malformed PA-API item {asin}: {e.error_count()} errors")
        return products
