"""freee accounting API client with automatic token refresh."""

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

import httpx
import structlog

from freee_link.clients.paging import fetch_all_pages
from freee_link.config.settings import Settings
from freee_link.models import AccountItem, Deal, FiscalYear, Partner, TrialBalance

logger = structlog.get_logger(__name__)


class FreeeAPIError(Exception):
    """A freee request failed; carries the HTTP status and the response body."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:
        message = super().__str__()
        if self.details:
            return f"{message}: {json.dumps(self.details, ensure_ascii=False)[:500]}"
        return message


class AuthenticationError(FreeeAPIError):
    """Access token rejected and could not be refreshed."""


@dataclass
class FreeeTokens:
    access_token: str | None
    refresh_token: str | None
    saved_at_unix: int | None = None


class TokenStore:
    """JSON file holding the latest token pair.

    freee rotates the refresh token on every refresh, so the new pair must be
    saved before the process exits or the next run cannot authenticate.
    """

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> FreeeTokens | None:
        if not self.path.exists():
            return None
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        return FreeeTokens(
            access_token=raw.get("access_token"),
            refresh_token=raw.get("refresh_token"),
            saved_at_unix=raw.get("saved_at_unix"),
        )

    def save(self, tokens: FreeeTokens) -> None:
        payload = {
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "saved_at_unix": int(time.time()),
        }
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


class FreeeClient:
    """Async client for the freee accounting API (``/api/1``)."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        token_store: TokenStore | None = None,
    ):
        self.base_url = settings.freee_api_url.rstrip("/")
        self.company_id = settings.freee_company_id
        self.page_size = settings.freee_page_size
        self._token_url = settings.freee_token_url
        self._timeout = settings.http_timeout
        self._client_id = settings.freee_client_id
        self._client_secret = (
            settings.freee_client_secret.get_secret_value()
            if settings.freee_client_secret
            else None
        )

        self._token_store = token_store or TokenStore(settings.tokens_path)
        stored = self._token_store.load()
        if stored and stored.refresh_token:
            self._tokens = stored
        else:
            self._tokens = FreeeTokens(
                access_token=(
                    settings.freee_access_token.get_secret_value()
                    if settings.freee_access_token
                    else None
                ),
                refresh_token=(
                    settings.freee_refresh_token.get_secret_value()
                    if settings.freee_refresh_token
                    else None
                ),
            )

        self._client = http_client
        self._lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FreeeClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # === Authentication ===

    @property
    def access_token(self) -> str | None:
        return self._tokens.access_token

    async def refresh_tokens(self, stale_token: str | None = None) -> None:
        """Exchange the refresh token for a new token pair and persist it.

        When ``stale_token`` is given and another request already replaced it,
        the refresh is skipped: concurrent requests that all saw a 401 must not
        burn the single-use refresh token more than once.
        """
        async with self._lock:
            if stale_token is not None and self._tokens.access_token != stale_token:
                return
            if not (self._client_id and self._client_secret and self._tokens.refresh_token):
                raise AuthenticationError(
                    "Token refresh requires FREEE_CLIENT_ID, FREEE_CLIENT_SECRET "
                    "and FREEE_REFRESH_TOKEN"
                )

            client = await self._get_client()
            try:
                response = await client.post(
                    self._token_url,
                    json={
                        "grant_type": "refresh_token",
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                        "refresh_token": self._tokens.refresh_token,
                    },
                )
            except httpx.RequestError as e:
                raise AuthenticationError(f"Token refresh failed: {e}") from e

            data = self._decode(response)
            if response.status_code != 200 or not data.get("access_token"):
                raise AuthenticationError(
                    f"Token refresh failed: {response.status_code}",
                    status_code=response.status_code,
                    details=data,
                )

            self._tokens = FreeeTokens(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token") or self._tokens.refresh_token,
            )
            self._token_store.save(self._tokens)
            logger.info("tokens_refreshed", tokens_file=str(self._token_store.path))

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._tokens.access_token:
            headers["Authorization"] = f"Bearer {self._tokens.access_token}"
        return headers

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {"raw": response.text[:500]}
        return data if isinstance(data, dict) else {"items": data}

    # === Generic Request Methods ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request, refreshing the token at most once on 401."""
        if not self._tokens.access_token:
            await self.refresh_tokens()
        client = await self._get_client()

        response: httpx.Response | None = None
        for attempt in range(2):
            token = self._tokens.access_token
            try:
                response = await client.request(
                    method=method,
                    url=path,
                    params=params,
                    json=json,
                    data=data,
                    files=files,
                    headers=self._get_headers(),
                )
            except httpx.RequestError as e:
                raise FreeeAPIError(f"Request failed: {e}") from e

            if response.status_code == 401 and attempt == 0:
                logger.info("access_token_rejected", path=path)
                await self.refresh_tokens(stale_token=token)
                continue
            break

        assert response is not None
        if response.status_code >= 400:
            error_cls = AuthenticationError if response.status_code == 401 else FreeeAPIError
            raise error_cls(
                f"API error {response.status_code}",
                status_code=response.status_code,
                details=self._decode(response),
            )
        return self._decode(response)

    def _company_params(self, **params: Any) -> dict[str, Any]:
        scoped = {"company_id": self.company_id}
        scoped.update({key: value for key, value in params.items() if value is not None})
        return scoped

    async def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    async def post(self, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make POST request."""
        return await self._request("POST", path, json=json)

    # === Companies ===

    async def list_companies(self) -> list[dict[str, Any]]:
        result = await self.get("/api/1/companies")
        return result.get("companies") or []

    async def get_company(self, company_id: int | None = None) -> dict[str, Any]:
        result = await self.get(f"/api/1/companies/{company_id or self.company_id}")
        return result.get("company") or {}

    async def fiscal_years(self) -> list[FiscalYear]:
        company = await self.get_company()
        return FiscalYear.list_from_api(company.get("fiscal_years"))

    # === Deals ===

    async def list_deals(
        self,
        offset: int = 0,
        limit: int = 100,
        start_issue_date: date | str | None = None,
        end_issue_date: date | str | None = None,
    ) -> list[dict[str, Any]]:
        result = await self.get(
            "/api/1/deals",
            params=self._company_params(
                offset=offset,
                limit=limit,
                start_issue_date=_iso(start_issue_date),
                end_issue_date=_iso(end_issue_date),
            ),
        )
        return result.get("deals") or []

    async def fetch_all_deals(
        self, start_issue_date: date | str | None = None, end_issue_date: date | str | None = None
    ) -> list[dict[str, Any]]:
        deals = await fetch_all_pages(
            lambda offset, limit: self.list_deals(offset, limit, start_issue_date, end_issue_date),
            self.page_size,
        )
        logger.info("deals_fetched", count=len(deals))
        return deals

    async def create_deal(self, payload: dict[str, Any]) -> dict[str, Any]:
        result = await self.post("/api/1/deals", json=payload)
        return result.get("deal") or result

    # === Master data ===

    async def list_account_items(self) -> list[dict[str, Any]]:
        result = await self.get("/api/1/account_items", params=self._company_params())
        return result.get("account_items") or []

    async def list_partners(self, offset: int = 0, limit: int = 100) -> list[dict[str, Any]]:
        result = await self.get(
            "/api/1/partners", params=self._company_params(offset=offset, limit=limit)
        )
        return result.get("partners") or []

    async def fetch_all_partners(self) -> list[dict[str, Any]]:
        return await fetch_all_pages(self.list_partners, self.page_size)

    # === Invoices ===

    async def list_invoices(self, offset: int = 0, limit: int = 100) -> list[dict[str, Any]]:
        result = await self.get(
            "/api/1/invoices", params=self._company_params(offset=offset, limit=limit)
        )
        return result.get("invoices") or []

    async def fetch_all_invoices(self) -> list[dict[str, Any]]:
        return await fetch_all_pages(self.list_invoices, self.page_size)

    # === Wallets ===

    async def list_walletables(self) -> list[dict[str, Any]]:
        result = await self.get("/api/1/walletables", params=self._company_params())
        return result.get("walletables") or []

    async def list_wallet_txns(
        self,
        walletable_id: int,
        walletable_type: str,
        offset: int = 0,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        result = await self.get(
            "/api/1/wallet_txns",
            params=self._company_params(
                walletable_id=walletable_id,
                walletable_type=walletable_type,
                offset=offset,
                limit=limit,
            ),
        )
        return result.get("wallet_txns") or []

    async def fetch_all_wallet_txns(
        self, walletable_id: int, walletable_type: str
    ) -> list[dict[str, Any]]:
        return await fetch_all_pages(
            lambda offset, limit: self.list_wallet_txns(
                walletable_id, walletable_type, offset, limit
            ),
            self.page_size,
        )

    # === Reports ===

    async def get_trial_pl(
        self,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        fiscal_year: int | None = None,
    ) -> dict[str, Any]:
        result = await self.get(
            "/api/1/reports/trial_pl",
            params=self._company_params(
                start_date=_iso(start_date), end_date=_iso(end_date), fiscal_year=fiscal_year
            ),
        )
        return result.get("trial_pl") or {}

    async def get_trial_bs(self, fiscal_year: int | None = None) -> dict[str, Any]:
        result = await self.get(
            "/api/1/reports/trial_bs", params=self._company_params(fiscal_year=fiscal_year)
        )
        return result.get("trial_bs") or {}

    # === Receipts ===

    async def upload_receipt(self, filename: str, content: bytes, mime_type: str) -> dict[str, Any]:
        """Upload a receipt file (multipart/form-data)."""
        result = await self._request(
            "POST",
            "/api/1/receipts",
            data={"company_id": str(self.company_id)},
            files={"receipt": (filename, content, mime_type)},
        )
        return result.get("receipt") or result

    # === Typed snapshots ===

    async def fetch_deals(
        self, start_issue_date: date | str | None = None, end_issue_date: date | str | None = None
    ) -> list[Deal]:
        raw = await self.fetch_all_deals(start_issue_date, end_issue_date)
        return [Deal.from_api(d) for d in raw]

    async def fetch_account_items(self) -> list[AccountItem]:
        return [AccountItem.from_api(a) for a in await self.list_account_items()]

    async def fetch_partners(self) -> list[Partner]:
        return [Partner.from_api(p) for p in await self.fetch_all_partners()]

    async def fetch_trial_pl(self, start_date: date | str, end_date: date | str) -> TrialBalance:
        return TrialBalance.from_api(await self.get_trial_pl(start_date, end_date))


def _iso(value: date | str | None) -> str | None:
    if isinstance(value, date):
        return value.isoformat()
    return value
