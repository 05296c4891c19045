"""Tests for the freee API client."""

import json

import httpx
import pytest

from freee_link.clients.freee import (
    AuthenticationError,
    FreeeAPIError,
    FreeeClient,
    FreeeTokens,
    TokenStore,
)

TOKEN_URL = "https://accounts.secure.freee.co.jp/public_api/token"


class FakeFreee:
    """Routes requests to canned responses and records what was sent."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[httpx.Response]] = {}
        self.token_responses: list[httpx.Response] = []

    def add(self, path: str, *responses: httpx.Response) -> None:
        self.routes.setdefault(path, []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == TOKEN_URL:
            return self.token_responses.pop(0)
        queue = self.routes[request.url.path]
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) != TOKEN_URL]

    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == TOKEN_URL]


@pytest.fixture
def fake():
    return FakeFreee()


@pytest.fixture
def token_store(tmp_path):
    return TokenStore(tmp_path / "tokens.json")


@pytest.fixture
def client(settings, fake, token_store):
    """FreeeClient wired to the fake transport."""
    http = httpx.AsyncClient(
        base_url=settings.freee_api_url, transport=httpx.MockTransport(fake.handler)
    )
    return FreeeClient(settings, http_client=http, token_store=token_store)


def ok(body) -> httpx.Response:
    return httpx.Response(200, json=body)


def refreshed(access="new-access", refresh="new-refresh") -> httpx.Response:
    return httpx.Response(200, json={"access_token": access, "refresh_token": refresh})


class TestTokenStore:
    def test_round_trip(self, token_store):
        token_store.save(FreeeTokens(access_token="a", refresh_token="r"))

        loaded = token_store.load()

        assert loaded.access_token == "a"
        assert loaded.refresh_token == "r"
        assert loaded.saved_at_unix > 0

    def test_missing_file(self, tmp_path):
        assert TokenStore(tmp_path / "none.json").load() is None


class TestClientInit:
    def test_uses_settings_tokens(self, client):
        assert client.access_token == "access-token-123"
        assert client.company_id == 1234

    def test_stored_tokens_win(self, settings, token_store):
        """Test that the rotated token pair on disk replaces the .env pair."""
        token_store.save(FreeeTokens(access_token="disk-access", refresh_token="disk-refresh"))

        client = FreeeClient(settings, token_store=token_store)

        assert client.access_token == "disk-access"


class TestRequests:
    """Tests for authenticated requests."""

    @pytest.mark.asyncio
    async def test_sends_bearer_and_company_id(self, client, fake):
        fake.add("/api/1/account_items", ok({"account_items": [{"id": 1, "name": "Cash"}]}))

        items = await client.fetch_account_items()

        assert items[0].name == "Cash"
        request = fake.api_requests()[0]
        assert request.headers["Authorization"] == "Bearer access-token-123"
        assert request.url.params["company_id"] == "1234"

    @pytest.mark.asyncio
    async def test_error_carries_status_and_body(self, client, fake):
        fake.add("/api/1/deals", httpx.Response(400, json={"errors": ["bad date"]}))

        with pytest.raises(FreeeAPIError) as exc_info:
            await client.list_deals()

        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"errors": ["bad date"]}
        assert "bad date" in str(exc_info.value)
        assert len(fake.api_requests()) == 1

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self, settings, token_store):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        http = httpx.AsyncClient(
            base_url=settings.freee_api_url, transport=httpx.MockTransport(handler)
        )
        client = FreeeClient(settings, http_client=http, token_store=token_store)

        with pytest.raises(FreeeAPIError, match="Request failed"):
            await client.list_companies()

    @pytest.mark.asyncio
    async def test_paginates_deals_with_dates(self, client, fake):
        client.page_size = 2
        fake.add(
            "/api/1/deals",
            ok({"deals": [{"id": 1}, {"id": 2}]}),
            ok({"deals": [{"id": 3}]}),
        )

        deals = await client.fetch_deals("2025-04-01", "2026-03-31")

        assert [d.id for d in deals] == [1, 2, 3]
        offsets = [r.url.params["offset"] for r in fake.api_requests()]
        assert offsets == ["0", "2"]
        assert fake.api_requests()[0].url.params["start_issue_date"] == "2025-04-01"


class TestTokenRefresh:
    """Tests for the 401 refresh-and-retry path."""

    @pytest.mark.asyncio
    async def test_refreshes_once_and_retries(self, client, fake, token_store):
        fake.add(
            "/api/1/companies",
            httpx.Response(401, json={"message": "expired"}),
            ok({"companies": [{"id": 1234}]}),
        )
        fake.token_responses.append(refreshed())

        companies = await client.list_companies()

        assert companies == [{"id": 1234}]
        assert len(fake.token_requests()) == 1
        retried = fake.api_requests()[-1]
        assert retried.headers["Authorization"] == "Bearer new-access"

        saved = token_store.load()
        assert saved.access_token == "new-access"
        assert saved.refresh_token == "new-refresh"

        body = json.loads(fake.token_requests()[0].content)
        assert body["grant_type"] == "refresh_token"
        assert body["refresh_token"] == "refresh-token-123"

    @pytest.mark.asyncio
    async def test_second_401_is_not_retried(self, client, fake):
        """Test that the retry is bounded to one."""
        fake.add("/api/1/companies", httpx.Response(401, json={"message": "expired"}))
        fake.token_responses.append(refreshed())

        with pytest.raises(AuthenticationError) as exc_info:
            await client.list_companies()

        assert exc_info.value.status_code == 401
        assert len(fake.api_requests()) == 2
        assert len(fake.token_requests()) == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_raises(self, client, fake):
        fake.add("/api/1/companies", httpx.Response(401, json={}))
        fake.token_responses.append(httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(AuthenticationError, match="Token refresh failed"):
            await client.list_companies()

    @pytest.mark.asyncio
    async def test_refresh_without_credentials(self, settings, token_store, fake):
        settings = settings.model_copy(update={"freee_client_secret": None})
        http = httpx.AsyncClient(
            base_url=settings.freee_api_url, transport=httpx.MockTransport(fake.handler)
        )
        client = FreeeClient(settings, http_client=http, token_store=token_store)

        with pytest.raises(AuthenticationError, match="FREEE_CLIENT_SECRET"):
            await client.refresh_tokens()

    @pytest.mark.asyncio
    async def test_stale_token_skips_second_refresh(self, client, fake):
        """Test that a refresh for an already-replaced token is a no-op."""
        fake.token_responses.append(refreshed())

        await client.refresh_tokens(stale_token="access-token-123")
        await client.refresh_tokens(stale_token="access-token-123")

        assert len(fake.token_requests()) == 1
        assert client.access_token == "new-access"

    @pytest.mark.asyncio
    async def test_missing_access_token_refreshes_first(self, settings, token_store, fake):
        settings = settings.model_copy(update={"freee_access_token": None})
        http = httpx.AsyncClient(
            base_url=settings.freee_api_url, transport=httpx.MockTransport(fake.handler)
        )
        client = FreeeClient(settings, http_client=http, token_store=token_store)
        fake.add("/api/1/companies", ok({"companies": []}))
        fake.token_responses.append(refreshed())

        assert await client.list_companies() == []
        assert fake.requests[0].url == TOKEN_URL


class TestEndpoints:
    @pytest.mark.asyncio
    async def test_create_deal_posts_json(self, client, fake):
        fake.add("/api/1/deals", httpx.Response(201, json={"deal": {"id": 99}}))

        deal = await client.create_deal({"company_id": 1234, "type": "expense"})

        assert deal == {"id": 99}
        request = fake.api_requests()[0]
        assert request.method == "POST"
        assert json.loads(request.content)["type"] == "expense"

    @pytest.mark.asyncio
    async def test_upload_receipt_is_multipart(self, client, fake):
        fake.add("/api/1/receipts", httpx.Response(201, json={"receipt": {"id": 5}}))

        receipt = await client.upload_receipt("r.pdf", b"%PDF", "application/pdf")

        assert receipt == {"id": 5}
        request = fake.api_requests()[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="company_id"' in request.content
        assert b'filename="r.pdf"' in request.content

    @pytest.mark.asyncio
    async def test_fiscal_years_from_company(self, client, fake):
        fake.add(
            "/api/1/companies/1234",
            ok(
                {
                    "company": {
                        "id": 1234,
                        "fiscal_years": [{"start_date": "2025-01-01", "end_date": "2025-12-31"}],
                    }
                }
            ),
        )

        years = await client.fiscal_years()

        assert years[0].start_date.year == 2025

    @pytest.mark.asyncio
    async def test_trial_pl_typed(self, client, fake):
        fake.add(
            "/api/1/reports/trial_pl",
            ok({"trial_pl": {"balances": [{"account_category_id": 9, "credit_amount": 10}]}}),
        )

        report = await client.fetch_trial_pl("2025-01-01", "2025-12-31")

        assert report.rows[0].credit_amount == 10
        params = fake.api_requests()[0].url.params
        assert params["start_date"] == "2025-01-01"
        assert "fiscal_year" not in params

    @pytest.mark.asyncio
    async def test_close_releases_client(self, client):
        async with client:
            pass
        assert client._client is None
