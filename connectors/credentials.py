"""
Typed replacements for the integration's free-form metadata map.

``AuditTrail`` holds connection lifecycle stamps (stored in
``integrations.audit``).  ``CredentialBundle`` holds the fields an API-key
platform was configured with; it is serialised to JSON and encrypted into
``integrations.access_token``, while its non-secret fields are copied to
``integrations.provider_meta`` for display.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from config.platforms import PlatformCatalogEntry
from connectors.errors import ValidationError


class AuditTrail(BaseModel):
    connection_type: Optional[Literal["oauth", "api_key"]] = None
    connected_at: Optional[datetime] = None
    disconnected_at: Optional[datetime] = None
    disconnected_manually: bool = False
    token_type: Optional[str] = None
    scope: Optional[str] = None
    last_refreshed_at: Optional[datetime] = None

    @classmethod
    def load(cls, raw: Optional[Mapping[str, Any]]) -> "AuditTrail":
        return cls.model_validate(dict(raw or {}))

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# Format checks beyond "required field present"
def _check_klaviyo(fields: Dict[str, str]) -> None:
    if not fields.get("privateKey", "").startswith("pk_"):
        raise ValidationError('Invalid Klaviyo private key format. It should start with "pk_"')


_FORMAT_CHECKS = {
    "klaviyo": _check_klaviyo,
}


class CredentialBundle(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: str
    fields: Dict[str, str]
    secret_fields: tuple[str, ...] = ()

    @classmethod
    def from_submission(
        cls,
        entry: PlatformCatalogEntry,
        raw: Optional[Mapping[str, Any]],
    ) -> "CredentialBundle":
        """
        Validate a submitted credential form against the catalog entry.

        Only fields the catalog declares are kept; unknown keys are dropped.
        Raises ``ValidationError`` naming every missing required field.
        """
        if not entry.requires_api_key:
            raise ValidationError("Platform does not use API key authentication")
        raw = raw or {}

        fields: Dict[str, str] = {}
        missing = []
        for field_def in entry.api_key_fields:
            value = raw.get(field_def.name)
            value = str(value).strip() if value is not None else ""
            if not value:
                if field_def.required:
                    missing.append(field_def.label)
                continue
            if field_def.options and value not in field_def.options:
                raise ValidationError(f"{field_def.label} must be one of: {', '.join(field_def.options)}")
            fields[field_def.name] = value

        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        check = _FORMAT_CHECKS.get(entry.id)
        if check:
            check(fields)

        return cls(
            platform=entry.id,
            fields=fields,
            secret_fields=tuple(f.name for f in entry.api_key_fields if f.is_secret),
        )

    @classmethod
    def from_json(cls, platform: str, payload: str) -> "CredentialBundle":
        return cls(platform=platform, fields=json.loads(payload))

    def to_json(self) -> str:
        return json.dumps(self.fields, separators=(",", ":"), sort_keys=True)

    def public_fields(self) -> Dict[str, str]:
        return {k: v for k, v in self.fields.items() if k not in self.secret_fields}
