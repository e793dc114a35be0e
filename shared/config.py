import os
from typing import Optional


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return an environment setting with an optional default."""
    return os.getenv(name, default)


def get_database_url() -> str:
    """
    Return the database URL for SQLAlchemy.
    Defaults to a local SQLite file for development if not provided.
    """
    return os.getenv("DATABASE_URL") or os.getenv("POSTGRES_CONNECTION_STRING") or "sqlite:///./crm.db"


def get_graph_settings() -> dict:
    """
    Azure AD app registration used for Microsoft Graph client-credential calls.
    Values are returned as-is; the Teams provisioner decides what is missing.
    """
    return {
        "tenant": (os.getenv("AZURE_TENANT_ID") or "").strip(),
        "client_id": (os.getenv("AZURE_CLIENT_ID") or "").strip(),
        "client_secret": (os.getenv("AZURE_CLIENT_SECRET") or "").strip(),
        "authority": (os.getenv("AZURE_AUTHORITY_HOST") or "https://login.microsoftonline.com").rstrip("/"),
        "graph_base": (os.getenv("GRAPH_API_BASE_URL") or "https://graph.microsoft.com/v1.0").rstrip("/"),
        "scope": os.getenv("GRAPH_SCOPE", "https://graph.microsoft.com/.default"),
    }


def get_http_timeout() -> float:
    raw = os.getenv("GRAPH_HTTP_TIMEOUT_SECONDS")
    try:
        return float(raw) if raw else 15.0
    except ValueError:
        return 15.0


def get_default_timezone() -> str:
    return os.getenv("CRM_DEFAULT_TIMEZONE", "Europe/Berlin")
