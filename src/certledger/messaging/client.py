"""HTTP client for the Hyperledger FireFly private messaging channel."""

import json
import logging
from typing import Any

import httpx

from certledger.common.exceptions import ChannelError

logger = logging.getLogger(__name__)


class FireFlyClient:
    """Calls a FireFly node's REST API for one namespace.

    Delivery on the channel is at-least-once; consumers must tolerate
    the same message arriving more than once.
    """

    def __init__(self, base_url: str, namespace: str = "default", timeout: float = 30.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.namespace = namespace
        self._http = httpx.AsyncClient(
            base_url=f"{self.base_url}/api/v1",
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def _ns(self) -> str:
        return f"/namespaces/{self.namespace}"

    # ── Read ──

    async def get_messages(self, limit: int = 50, author: str | None = None) -> list[dict[str, Any]]:
        """Most recent private messages, optionally filtered by author."""
        params: dict[str, Any] = {"limit": limit, "type": "private"}
        if author:
            params["author"] = author
        resp = await self._http.get(f"{self._ns}/messages", params=params)
        resp.raise_for_status()
        messages = resp.json()
        logger.debug("Retrieved %d messages from FireFly", len(messages))
        return messages

    async def retrieve_data(self, refs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Resolve a message's data references to their stored values."""
        items = []
        for ref in refs:
            resp = await self._http.get(f"{self._ns}/data/{ref['id']}")
            resp.raise_for_status()
            items.append(resp.json())
        return items

    async def get_status(self) -> dict[str, Any]:
        resp = await self._http.get("/status")
        resp.raise_for_status()
        return resp.json()

    async def get_orgs(self) -> list[dict[str, Any]]:
        resp = await self._http.get("/network/organizations")
        resp.raise_for_status()
        return [
            {**org, "identity": org.get("did") or org.get("identity")}
            for org in resp.json()
        ]

    async def get_org_identity(self, org_name: str) -> str:
        """Resolve an organization name to its FireFly identity (DID)."""
        orgs = await self.get_orgs()
        for org in orgs:
            if org.get("name") == org_name:
                if not org.get("identity"):
                    raise ChannelError(f"No identity found for organization {org_name}")
                return org["identity"]
        available = ", ".join(o.get("name", "?") for o in orgs)
        raise ChannelError(f"Organization {org_name} not found. Available: {available}")

    # ── Write ──

    async def upload_blob(self, content: bytes, metadata: dict[str, Any]) -> dict[str, Any]:
        """Upload a PDF as a FireFly data blob; returns ``{id, hash, size}``."""
        filename = metadata.get("filename", "certificate.pdf")
        form: dict[str, str] = {"autometa": "true", "filename": filename}
        if metadata.get("metadata"):
            form["metadata"] = json.dumps(metadata["metadata"], sort_keys=True)
        resp = await self._http.post(
            f"{self._ns}/data",
            data=form,
            files={"file": (filename, content, "application/pdf")},
        )
        resp.raise_for_status()
        body = resp.json()
        return {
            "id": body["id"],
            "hash": body.get("hash"),
            "size": (body.get("blob") or {}).get("size"),
        }

    async def send_private(self, payload: dict[str, Any], target_org: str) -> dict[str, Any]:
        """Store ``payload`` as a data item and send it privately to ``target_org``."""
        identity = await self.get_org_identity(target_org)

        data_resp = await self._http.post(
            f"{self._ns}/data", json={"value": json.dumps(payload, default=str)},
        )
        data_resp.raise_for_status()

        message = {
            "data": [{"id": data_resp.json()["id"]}],
            "group": {"members": [{"identity": identity}]},
        }
        resp = await self._http.post(f"{self._ns}/messages/private", json=message)
        resp.raise_for_status()
        logger.info("Private message sent to %s", target_org)
        return resp.json()
