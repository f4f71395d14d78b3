from __future__ import annotations

import json
import urllib.parse
from typing import Any, Callable, Dict, List, Type, TypeVar

from .config import GUMROAD_API_BASE, VERIFY_TIMEOUT
from .models import License, LicenseVerification, Product, Sale
from .upstream import PayloadError, UpstreamClient, UpstreamError

T = TypeVar("T", Product, License, Sale)


def _decode(content: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(content)
    except ValueError as exc:
        raise PayloadError(f"Malformed JSON from upstream: {exc}") from exc
    if not isinstance(payload, dict):
        raise PayloadError(f"Expected JSON object from upstream, got {type(payload).__name__}")
    return payload


def _decode_list(payload: Dict[str, Any], key: str, model: Type[T]) -> List[T]:
    if payload.get("success") is not True:
        raise UpstreamError("API request was not successful")
    items = payload.get(key)
    if items is None:
        return []
    if not isinstance(items, list):
        raise PayloadError(f"Expected '{key}' to be a list, got {type(items).__name__}")
    return [model.from_payload(item) for item in items]


class GumroadAPI:
    """Typed operations over the Gumroad v2 API.

    Every call goes through ``client`` so it lands in the call history.
    ``token_provider`` is read per call so a token saved during setup takes
    effect without a restart.
    """

    def __init__(
        self,
        client: UpstreamClient,
        token_provider: Callable[[], str],
        *,
        base_url: str = GUMROAD_API_BASE,
    ) -> None:
        self.client = client
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")

    def _fetch(self, path: str) -> Dict[str, Any]:
        resp = self.client.perform("GET", self.base_url + path, self.token_provider())
        return _decode(resp.content)

    def list_products(self) -> List[Product]:
        return _decode_list(self._fetch("/products"), "products", Product)

    def list_licenses(self, product_id: str) -> List[License]:
        path = f"/products/{urllib.parse.quote(product_id, safe='')}/subscribers"
        return _decode_list(self._fetch(path), "licenses", License)

    def list_sales(self, product_id: str) -> List[Sale]:
        query = urllib.parse.urlencode({"product_id": product_id})
        return _decode_list(self._fetch(f"/sales?{query}"), "sales", Sale)

    def verify_license(self, product_id: str, license_key: str) -> LicenseVerification:
        # Gumroad reports unknown licenses in-body (often with a 404), so any
        # status that carries a body is a completed call here.
        resp = self.client.perform(
            "POST",
            self.base_url + "/licenses/verify",
            self.token_provider(),
            body={
                "product_id": product_id,
                "license_key": license_key,
                "increment_uses_count": "false",
            },
            expected_status=None,
        )
        return LicenseVerification.from_payload(_decode(resp.content))

    def check_token(self, token: str) -> None:
        """Raise ``InvalidTokenError`` on 401, ``UpstreamError`` on other failures."""
        self.client.perform("GET", self.base_url + "/products", token, timeout=VERIFY_TIMEOUT)
