"""API clients for freee, Lark and Google."""

from freee_link.clients.freee import (
    AuthenticationError,
    FreeeAPIError,
    FreeeClient,
    FreeeTokens,
    TokenStore,
)
from freee_link.clients.google import DriveClient, GoogleServices, SheetsClient, SheetTable
from freee_link.clients.lark import (
    LarkAPIError,
    LarkClient,
    build_deal_card,
    build_summary_card,
)
from freee_link.clients.paging import fetch_all_pages

__all__ = [
    # freee
    "FreeeClient",
    "FreeeAPIError",
    "AuthenticationError",
    "FreeeTokens",
    "TokenStore",
    "fetch_all_pages",
    # Lark
    "LarkClient",
    "LarkAPIError",
    "build_deal_card",
    "build_summary_card",
    # Google
    "GoogleServices",
    "SheetsClient",
    "DriveClient",
    "SheetTable",
]
