"""freee-link - freee accounting glue for Google Sheets, Google Drive and Lark."""

__version__ = "0.1.0"

from freee_link.audit import AuditResults, run_audit, run_checks
from freee_link.clients import (
    DriveClient,
    FreeeAPIError,
    FreeeClient,
    GoogleServices,
    LarkAPIError,
    LarkClient,
    SheetsClient,
)
from freee_link.config import ConfigurationError, Settings, configure_logging, load_settings
from freee_link.models import AccountItem, Deal, DealDetail, Partner, TrialBalance

__all__ = [
    # Version
    "__version__",
    # Models
    "Deal",
    "DealDetail",
    "AccountItem",
    "Partner",
    "TrialBalance",
    # Clients
    "FreeeClient",
    "FreeeAPIError",
    "LarkClient",
    "LarkAPIError",
    "GoogleServices",
    "SheetsClient",
    "DriveClient",
    # Audit
    "AuditResults",
    "run_audit",
    "run_checks",
    # Config
    "ConfigurationError",
    "Settings",
    "load_settings",
    "configure_logging",
]
