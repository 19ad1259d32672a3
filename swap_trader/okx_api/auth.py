"""
Authentication utilities for the OKX V5 REST API

Signs private requests with HMAC-SHA256 (base64) and sends them with httpx.
Public endpoints go through the same retry loop without the OK-ACCESS headers.
"""

import asyncio
import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

BASE_URL = "https://www.okx.com"


def iso_timestamp() -> str:
    """UTC timestamp in the millisecond ISO format OKX expects, e.g. 2020-12-08T09:08:57.715Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compact_json(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"))


def build_request_path(endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Append the query string to the endpoint.

    OKX signs GET requests over the path *including* the query string,
    so the exact same string must be used for signing and sending.
    """
    if not params:
        return endpoint
    clean = {k: v for k, v in params.items() if v is not None}
    if not clean:
        return endpoint
    return f"{endpoint}?{urlencode(clean)}"


def generate_okx_signature(api_secret: str, timestamp: str, method: str, request_path: str, body: str = "") -> str:
    """
    Generate the OK-ACCESS-SIGN header value

    Args:
        api_secret: OKX API secret
        timestamp: ISO timestamp (same value sent as OK-ACCESS-TIMESTAMP)
        method: HTTP method, upper case
        request_path: Endpoint path including query string
        body: Compact JSON body (empty for GET requests)

    Returns:
        Base64-encoded HMAC-SHA256 digest
    """
    message = timestamp + method.upper() + request_path + body
    digest = hmac.new(api_secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


async def _send(
    method: str,
    url: str,
    headers: Dict[str, str],
    body: str,
    description: str,
) -> Dict[str, Any]:
    """Send a prepared request, retrying 429 responses with exponential backoff."""
    async with httpx.AsyncClient(timeout=30.0) as client:
        max_retries = 3
        for attempt in range(max_retries):
            try:
                if method == "GET":
                    response = await client.get(url, headers=headers)
                elif method == "POST":
                    response = await client.post(url, headers=headers, content=body)
                else:
                    raise ValueError(f"Unsupported method: {method}")

                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                if e.response.status_code == 429:  # Too Many Requests
                    if attempt < max_retries - 1:
                        # Exponential backoff: 1s, 2s, 4s
                        wait_time = 2**attempt
                        logger.warning(
                            f"⚠️  Rate limited (429) on {description}, "
                            f"retrying in {wait_time}s... (attempt {attempt + 1}/{max_retries})"
                        )
                        await asyncio.sleep(wait_time)
                        continue
                    else:
                        logger.error(f"❌ Rate limit exceeded after {max_retries} attempts on {description}")
                        raise
                else:
                    try:
                        error_body = e.response.json()
                    except Exception:
                        error_body = e.response.text
                    logger.error(f"❌ OKX API error {e.response.status_code} on {description}: {error_body}")
                    raise

    raise RuntimeError(f"Unexpected: No response after {max_retries} attempts")


async def authenticated_request(
    method: str,
    endpoint: str,
    api_key: str,
    api_secret: str,
    passphrase: str,
    params: Optional[Dict[str, Any]] = None,
    data: Any = None,
    demo: bool = False,
    base_url: str = BASE_URL,
) -> Dict[str, Any]:
    """
    Make a signed request to the OKX API

    Args:
        method: HTTP method (GET, POST)
        endpoint: API endpoint path, e.g. /api/v5/account/balance
        api_key: OKX API key
        api_secret: OKX API secret
        passphrase: Passphrase chosen when the key was created
        params: Query parameters (GET)
        data: JSON body (POST), a dict or a list for batch endpoints
        demo: Route to demo trading (x-simulated-trading header)
        base_url: REST host

    Returns:
        Decoded JSON envelope ({"code", "msg", "data"})
    """
    method = method.upper()
    request_path = build_request_path(endpoint, params)
    body = compact_json(data) if data else ""
    timestamp = iso_timestamp()

    headers = {
        "OK-ACCESS-KEY": api_key,
        "OK-ACCESS-SIGN": generate_okx_signature(api_secret, timestamp, method, request_path, body),
        "OK-ACCESS-TIMESTAMP": timestamp,
        "OK-ACCESS-PASSPHRASE": passphrase,
        "Content-Type": "application/json",
    }
    if demo:
        headers["x-simulated-trading"] = "1"

    return await _send(method, f"{base_url}{request_path}", headers, body, f"{method} {endpoint}")


async def public_request(
    method: str,
    endpoint: str,
    params: Optional[Dict[str, Any]] = None,
    demo: bool = False,
    base_url: str = BASE_URL,
) -> Dict[str, Any]:
    """Unsigned request for public market data endpoints."""
    method = method.upper()
    request_path = build_request_path(endpoint, params)
    headers = {"Content-Type": "application/json"}
    if demo:
        headers["x-simulated-trading"] = "1"
    return await _send(method, f"{base_url}{request_path}", headers, "", f"{method} {endpoint}")
