"""HTTP clients for the tenant directory and settings services.

Both services sit behind the same private API.  Failures are not
swallowed: ``httpx.HTTPError`` propagates to the calling handler so the
delivery is retried by the platform.
"""

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class PlatformClient:
    def __init__(self, base_url: str, timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = self._client.request(method, path, **kwargs)
        resp.raise_for_status()
        if not resp.content:
            return None
        return resp.json()

    def close(self) -> None:
        self._client.close()


class TenantClient(PlatformClient):
    def insert_tenant(self, request: dict) -> Optional[dict]:
        logger.info("Calling tenant service insert tenant API")
        body = self._request("POST", "/tenants", json=request)
        return body or None

    def get_tenant(self, tenant_id: str) -> Optional[dict]:
        if not tenant_id:
            raise ValueError("Can't fetch blank tenant id")
        logger.info("Calling tenant service get tenant %s", tenant_id)
        body = self._request("GET", f"/tenants/{tenant_id}")
        return body or None


class SettingsClient(PlatformClient):
    def get_app_config(self) -> Optional[dict]:
        logger.info("Calling settings service get app config API")
        body = self._request("GET", "/settings/config")
        return body or None

    def get_settings(self, *names: str) -> Dict[str, str]:
        logger.info("Calling settings service get settings API for %s", ", ".join(names))
        body = self._request("GET", "/settings", params=[("setting", name) for name in names]) or []
        return {item["name"]: item.get("value") or "" for item in body if item.get("name")}

    def get_secret(self, name: str) -> Optional[str]:
        logger.info("Calling settings service get secret API for %s", name)
        body = self._request("GET", f"/settings/{name}/secret") or {}
        return body.get("value") or None

    def check_quotas(self) -> dict:
        logger.info("API call for quotas/check")
        body = self._request("GET", "/quotas/check") or {}
        return {"passed": bool(body.get("passed")), "message": body.get("message") or ""}
