"""Lark Open API client: tenant auth, chat messages and Base (bitable) tables."""

import asyncio
import json
import time
from typing import Any

import httpx
import structlog

from freee_link.config.settings import Settings

logger = structlog.get_logger(__name__)

BATCH_SIZE = 500
# Refresh the tenant token this many seconds before Lark says it expires.
TOKEN_EXPIRY_MARGIN = 60


class LarkAPIError(Exception):
    """Lark answered with a non-zero ``code`` or an HTTP error."""

    def __init__(self, message: str, code: int | None = None, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class LarkClient:
    """Async client for the Lark Open API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.base_url = settings.lark_api_url.rstrip("/")
        self._app_id = settings.lark_app_id
        self._app_secret = (
            settings.lark_app_secret.get_secret_value() if settings.lark_app_secret else None
        )
        self._timeout = settings.http_timeout
        self.write_delay = settings.lark_write_delay

        self._client = http_client
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LarkClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @staticmethod
    def _check(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            raise LarkAPIError(
                f"Lark API error {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            ) from None
        code = data.get("code")
        if code != 0:
            raise LarkAPIError(
                f"Lark API error {code}: {data.get('msg', '')}",
                code=code,
                status_code=response.status_code,
            )
        return data

    async def tenant_access_token(self) -> str:
        """Return a cached tenant token, fetching a new one when it is near expiry."""
        async with self._lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            client = await self._get_client()
            try:
                response = await client.post(
                    "/open-apis/auth/v3/tenant_access_token/internal",
                    json={"app_id": self._app_id, "app_secret": self._app_secret},
                )
            except httpx.RequestError as e:
                raise LarkAPIError(f"Request failed: {e}") from e

            data = self._check(response)
            self._token = data["tenant_access_token"]
            expires_in = int(data.get("expire", 7200))
            self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
            logger.debug("lark_token_fetched", expires_in=expires_in)
            return self._token

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Authenticated request returning the response ``data`` object."""
        token = await self.tenant_access_token()
        client = await self._get_client()
        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as e:
            raise LarkAPIError(f"Request failed: {e}") from e
        return self._check(response).get("data") or {}

    # === Messaging ===

    async def _send(self, receive_id_type: str, receive_id: str, msg_type: str, content: Any):
        return await self.request(
            "POST",
            "/open-apis/im/v1/messages",
            params={"receive_id_type": receive_id_type},
            json={
                "receive_id": receive_id,
                "msg_type": msg_type,
                "content": json.dumps(content, ensure_ascii=False),
            },
        )

    async def send_text(self, chat_id: str, text: str) -> dict[str, Any]:
        return await self._send("chat_id", chat_id, "text", {"text": text})

    async def send_text_to_email(self, email: str, text: str) -> dict[str, Any]:
        return await self._send("email", email, "text", {"text": text})

    async def send_card(self, chat_id: str, card: dict[str, Any]) -> dict[str, Any]:
        return await self._send("chat_id", chat_id, "interactive", card)

    # === Base (bitable) ===

    async def create_base(self, name: str) -> dict[str, Any]:
        data = await self.request("POST", "/open-apis/bitable/v1/apps", json={"name": name})
        return data.get("app") or {}

    async def create_table(self, app_token: str, name: str, fields: list[dict[str, Any]]) -> str:
        data = await self.request(
            "POST",
            f"/open-apis/bitable/v1/apps/{app_token}/tables",
            json={"table": {"name": name, "fields": fields}},
        )
        return data["table_id"]

    async def list_tables(self, app_token: str) -> list[dict[str, Any]]:
        data = await self.request("GET", f"/open-apis/bitable/v1/apps/{app_token}/tables")
        return data.get("items") or []

    async def delete_table(self, app_token: str, table_id: str) -> None:
        await self.request("DELETE", f"/open-apis/bitable/v1/apps/{app_token}/tables/{table_id}")

    async def list_records(
        self, app_token: str, table_id: str, filter: str | None = None
    ) -> list[dict[str, Any]]:
        """All records of a table, following ``page_token`` until ``has_more`` is false."""
        records: list[dict[str, Any]] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {"page_size": BATCH_SIZE}
            if filter:
                params["filter"] = filter
            if page_token:
                params["page_token"] = page_token
            data = await self.request(
                "GET",
                f"/open-apis/bitable/v1/apps/{app_token}/tables/{table_id}/records",
                params=params,
            )
            records.extend(data.get("items") or [])
            page_token = data.get("page_token")
            if not data.get("has_more") or not page_token:
                break
        return records

    async def batch_create_records(
        self, app_token: str, table_id: str, records: list[dict[str, Any]]
    ) -> int:
        """Create records in chunks of 500, pausing between chunks."""
        created = 0
        for start in range(0, len(records), BATCH_SIZE):
            batch = records[start : start + BATCH_SIZE]
            data = await self.request(
                "POST",
                f"/open-apis/bitable/v1/apps/{app_token}/tables/{table_id}/records/batch_create",
                json={"records": batch},
            )
            created += len(data.get("records") or batch)
            if start + BATCH_SIZE < len(records):
                await asyncio.sleep(self.write_delay)
        return created

    async def batch_delete_records(
        self, app_token: str, table_id: str, record_ids: list[str]
    ) -> None:
        for start in range(0, len(record_ids), BATCH_SIZE):
            await self.request(
                "POST",
                f"/open-apis/bitable/v1/apps/{app_token}/tables/{table_id}/records/batch_delete",
                json={"records": record_ids[start : start + BATCH_SIZE]},
            )
            if start + BATCH_SIZE < len(record_ids):
                await asyncio.sleep(self.write_delay)


def build_deal_card(
    date: str,
    amount: int,
    account: str,
    partner: str | None = None,
    description: str | None = None,
    deal_id: int | None = None,
    status: str = "proposed",
) -> dict[str, Any]:
    """Interactive card describing one deal."""
    templates = {"proposed": "blue", "registered": "green", "error": "red"}
    fields = [
        {"is_short": True, "text": {"tag": "lark_md", "content": f"**Date**\n{date}"}},
        {"is_short": True, "text": {"tag": "lark_md", "content": f"**Amount**\n¥{amount:,}"}},
        {"is_short": True, "text": {"tag": "lark_md", "content": f"**Account**\n{account}"}},
    ]
    if partner:
        fields.append(
            {"is_short": True, "text": {"tag": "lark_md", "content": f"**Partner**\n{partner}"}}
        )

    elements: list[dict[str, Any]] = [{"tag": "div", "fields": fields}]
    if description:
        elements.append(
            {"tag": "div", "text": {"tag": "lark_md", "content": f"**Description**: {description}"}}
        )
    if deal_id:
        elements.append(
            {"tag": "note", "elements": [{"tag": "plain_text", "content": f"Deal ID: {deal_id}"}]}
        )

    return {
        "config": {"wide_screen_mode": True},
        "header": {
            "title": {"tag": "plain_text", "content": f"Journal entry {status}"},
            "template": templates.get(status, "blue"),
        },
        "elements": elements,
    }


def build_summary_card(title: str, lines: list[str]) -> dict[str, Any]:
    return {
        "config": {"wide_screen_mode": True},
        "header": {"title": {"tag": "plain_text", "content": title}, "template": "blue"},
        "elements": [{"tag": "div", "text": {"tag": "lark_md", "content": "\n".join(lines)}}],
    }
