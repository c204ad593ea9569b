"""
Pydantic request / response schemas for the integrations API.

Wire names are camelCase to match the dashboard front end.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# OAuth app settings
# ═══════════════════════════════════════════════════════════════════════════════


class OAuthAppCreate(_CamelModel):
    # Required-ness is enforced by OAuthAppStore so the error is a 400
    platform: str = ""
    client_id: str = Field("", alias="clientId")
    client_secret: Optional[str] = Field(None, alias="clientSecret")
    redirect_uri: Optional[str] = Field(None, alias="redirectUri")  # ignored
    scopes: List[str] = Field(default_factory=list)


class OAuthAppUpdate(_CamelModel):
    client_id: str = Field("", alias="clientId")
    client_secret: Optional[str] = Field(None, alias="clientSecret")
    redirect_uri: Optional[str] = Field(None, alias="redirectUri")  # ignored
    scopes: List[str] = Field(default_factory=list)
    is_active: Optional[bool] = Field(None, alias="isActive")


class OAuthAppOut(_CamelModel):
    id: str
    platform: str
    client_id: str = Field(alias="clientId")
    client_secret: Optional[str] = Field(None, alias="clientSecret")   # masked
    redirect_uri: str = Field(alias="redirectUri")
    scopes: List[str] = Field(default_factory=list)
    is_active: bool = Field(alias="isActive")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


# ═══════════════════════════════════════════════════════════════════════════════
# Integrations
# ═══════════════════════════════════════════════════════════════════════════════


class PlatformRequest(BaseModel):
    platform: str = ""


class ApiKeyRequest(BaseModel):
    platform: str = ""
    credentials: Dict[str, Any] = Field(default_factory=dict)


class ConnectResponse(_CamelModel):
    auth_url: str = Field(alias="authUrl")
