"""Provider settings repository (WhatsApp channel, email provider).

Every secret is written in the same statement as its display mask, and reads
return the masks only: a settings screen never gets a stored secret back.
Secrets are stored as given; encrypting them is the caller's concern.
"""

from __future__ import annotations

import base64
import uuid
from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from sitebuilder.domain.credentials import mask_secret, mask_token
from sitebuilder.domain.models import EmailSettingsInput, WhatsAppConfigInput
from sitebuilder.infra.time import utc_now
from sitebuilder.observability.logging import get_logger
from sitebuilder.observability.redaction import safe_log_context
from sitebuilder.schema.entities import metadata

logger = get_logger(__name__)

whatsapp_configs = metadata.tables["WhatsAppConfigs"]
email_settings = metadata.tables["EmailProviderSettings"]

DEFAULT_HEADER_NAME = "Authorization"
DEFAULT_HEADER_VALUE_TEMPLATE = "Bearer {secret}"
DEFAULT_EMAIL_PROVIDER = "Postmark"


def generate_webhook_token() -> str:
    """URL-safe random token: a UUID4 in base64 without padding."""
    return base64.urlsafe_b64encode(uuid.uuid4().bytes).decode("ascii").rstrip("=")


def webhook_path(provider: str, company_id: int, token: str) -> str:
    """Relative webhook path; clients prefix it with the API base URL."""
    return f"/webhooks/{provider.lower()}/{company_id}/{token}"


def _config_to_dict(row: Any) -> dict[str, Any]:
    return {
        "id": row.Id,
        "company_id": row.CompanyId,
        "provider": row.Provider,
        "whatsapp_phone_number": row.WhatsAppPhoneNumber,
        "webhook_url": row.WebhookUrl,
        "header_name": row.HeaderName,
        "header_value_template": row.HeaderValueTemplate,
        "is_active": row.IsActive,
        "green_api_instance_id": row.GreenApiInstanceId,
        "green_api_token_mask": row.GreenApiTokenMask,
        "twilio_account_sid_mask": row.TwilioAccountSidMask,
        "twilio_auth_token_mask": row.TwilioAuthTokenMask,
        "has_webhook_secret": bool(row.WebhookSecret),
    }


def get_whatsapp_config(conn: Connection, *, company_id: int) -> dict[str, Any] | None:
    row = conn.execute(
        sa.select(whatsapp_configs).where(whatsapp_configs.c.CompanyId == company_id)
    ).first()
    return _config_to_dict(row) if row else None


def save_whatsapp_config(conn: Connection, data: WhatsAppConfigInput) -> dict[str, Any]:
    """Create or update a company's WhatsApp configuration.

    Header settings always get the defaults. The webhook URL is rebuilt from
    the provider and the webhook token, which is generated once.

    Args:
        conn: Connection in an open transaction.
        data: Settings; empty secrets keep the stored ones.

    Returns:
        Configuration dict with masks in place of secrets.

    Raises:
        ValueError: If a new GreenApi configuration lacks its instance id or token.
    """
    now = utc_now()
    existing = conn.execute(
        sa.select(whatsapp_configs).where(whatsapp_configs.c.CompanyId == data.company_id)
    ).first()

    values: dict[str, Any] = {
        "Provider": data.provider,
        "HeaderName": DEFAULT_HEADER_NAME,
        "HeaderValueTemplate": DEFAULT_HEADER_VALUE_TEMPLATE,
        "UpdatedAt": now,
    }
    if data.whatsapp_phone_number:
        values["WhatsAppPhoneNumber"] = data.whatsapp_phone_number
    if data.is_active is not None:
        values["IsActive"] = data.is_active
    if data.green_api_instance_id:
        values["GreenApiInstanceId"] = data.green_api_instance_id
    if data.green_api_token:
        values["GreenApiToken"] = data.green_api_token
        values["GreenApiTokenMask"] = mask_token(data.green_api_token)
    if data.twilio_account_sid:
        values["TwilioAccountSid"] = data.twilio_account_sid
        values["TwilioAccountSidMask"] = mask_token(data.twilio_account_sid)
    if data.twilio_auth_token:
        values["TwilioAuthToken"] = data.twilio_auth_token
        values["TwilioAuthTokenMask"] = mask_token(data.twilio_auth_token)
    if data.webhook_secret:
        values["WebhookSecret"] = data.webhook_secret

    if existing is None:
        if data.provider == "GreenApi" and not (data.green_api_instance_id and data.green_api_token):
            raise ValueError("GreenApi instance id and token are required")
        token = generate_webhook_token()
        conn.execute(
            sa.insert(whatsapp_configs).values(
                CompanyId=data.company_id,
                WhatsAppPhoneNumber=data.whatsapp_phone_number or "",
                WebhookToken=token,
                WebhookUrl=webhook_path(data.provider, data.company_id, token),
                CreatedAt=now,
                **values,
            )
        )
    else:
        token = existing.WebhookToken or generate_webhook_token()
        conn.execute(
            sa.update(whatsapp_configs)
            .where(whatsapp_configs.c.CompanyId == data.company_id)
            .values(
                WebhookToken=token,
                WebhookUrl=webhook_path(data.provider, data.company_id, token),
                **values,
            )
        )

    logger.info(
        "whatsapp config saved",
        extra={
            "extra_fields": safe_log_context(
                company_id=data.company_id,
                provider=data.provider,
                phone=data.whatsapp_phone_number,
                created=existing is None,
            )
        },
    )
    return get_whatsapp_config(conn, company_id=data.company_id)


def _email_to_dict(row: Any) -> dict[str, Any]:
    return {
        "company_id": row.CompanyId,
        "provider": row.Provider,
        "from_email": row.FromEmail,
        "from_name": row.FromName,
        "is_active": row.IsActive,
        "has_api_key": bool(row.ApiKey),
        "api_key_mask": row.ApiKeyMask,
    }


def get_email_settings(conn: Connection, *, company_id: int) -> dict[str, Any] | None:
    row = conn.execute(
        sa.select(email_settings).where(email_settings.c.CompanyId == company_id)
    ).first()
    return _email_to_dict(row) if row else None


def _blank_to_none(value: str) -> str | None:
    return value if value.strip() else None


def save_email_settings(conn: Connection, data: EmailSettingsInput) -> dict[str, Any]:
    """Create or update a company's email provider settings.

    A blank provider falls back to Postmark. The API key is only replaced
    when a non-blank one is given; sender fields given as blank are cleared.

    Args:
        conn: Connection in an open transaction.
        data: Settings.

    Returns:
        Settings dict with the API key mask only.
    """
    now = utc_now()
    values: dict[str, Any] = {
        "Provider": data.provider.strip() or DEFAULT_EMAIL_PROVIDER,
        "UpdatedAt": now,
    }
    if data.api_key and data.api_key.strip():
        values["ApiKey"] = data.api_key
        values["ApiKeyMask"] = mask_secret(data.api_key)
    if data.from_email is not None:
        values["FromEmail"] = _blank_to_none(data.from_email)
    if data.from_name is not None:
        values["FromName"] = _blank_to_none(data.from_name)

    exists = conn.execute(
        sa.select(email_settings.c.Id).where(email_settings.c.CompanyId == data.company_id)
    ).first()
    if exists is None:
        conn.execute(
            sa.insert(email_settings).values(
                CompanyId=data.company_id, IsActive=True, CreatedAt=now, **values
            )
        )
    else:
        conn.execute(
            sa.update(email_settings)
            .where(email_settings.c.CompanyId == data.company_id)
            .values(**values)
        )

    logger.info(
        "email settings saved",
        extra={
            "extra_fields": safe_log_context(
                company_id=data.company_id,
                provider=values["Provider"],
                from_email=data.from_email,
            )
        },
    )
    return get_email_settings(conn, company_id=data.company_id)
