"""Session endpoint decoding and resolution"""

import json
import logging
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

# Hosts a server may announce for its own bind address; never reachable as-is
LOCAL_HOSTS = frozenset({"0.0.0.0", "localhost", "127.0.0.1"})


def decode_endpoint_payload(data: str) -> str:
    """
    Extract the endpoint string from an ``endpoint`` event payload.

    The payload is either a JSON object with an "endpoint" field, a JSON
    string, or the bare URL. Anything else is taken as the raw text.
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        return data.strip()

    if isinstance(payload, dict) and isinstance(payload.get("endpoint"), str):
        return payload["endpoint"].strip()
    if isinstance(payload, str):
        return payload.strip()

    return data.strip()


def _join(base_url: str, path: str, query: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    url = base_url.rstrip("/") + path
    if query:
        url += "?" + query
    return url


def resolve_endpoint(endpoint: str, base_url: str) -> str:
    """
    Resolve an announced endpoint into the URL requests are POSTed to.

    Servers behind a proxy often announce their internal bind address
    (e.g. http://0.0.0.0:7911/message?sessionId=x). Such hosts, and bare
    paths, are re-rooted on the client's base URL. Every other absolute URL
    is used verbatim.

    Args:
        endpoint: Decoded endpoint string
        base_url: Base URL the stream was opened against

    Returns:
        The session URL
    """
    try:
        parts = urlsplit(endpoint)
        hostname = parts.hostname
    except ValueError as e:
        logger.warning(f"Failed to parse endpoint URL, using as-is: {e}")
        return endpoint

    if parts.scheme and parts.netloc:
        if hostname in LOCAL_HOSTS:
            return _join(base_url, parts.path, parts.query)
        return endpoint

    if endpoint.startswith("/"):
        return _join(base_url, parts.path, parts.query)

    logger.warning(f"Endpoint is not a URL, using as-is: {endpoint}")
    return endpoint
