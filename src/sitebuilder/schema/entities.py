"""Authoritative final schema.

This is the shape the database has once every step in migrations/versions has
been applied. The test suite checks that the modeled head of the step sequence
equals target_schema(), so a step that drifts from these definitions fails
before it ever reaches a database.

Base tables (Companies, Users, Customers, WebsitePages, NewsletterSubscribers,
StructuralComponentsSettings) are owned by other subsystems; only the columns
the migrations touch or reference are described.
"""

from __future__ import annotations

import sqlalchemy as sa

from .model import (
    CURRENT_TIMESTAMP,
    ColumnSpec,
    Default,
    ForeignKeySpec,
    IndexSpec,
    SchemaState,
    TableSpec,
    column,
    table,
    varchar,
)

# Tables that are not scoped to a tenant.
TENANT_EXEMPT_TABLES: frozenset[str] = frozenset({"Companies", "Perros"})

CONVERSATION_STATUSES = ("active", "closed")
CONVERSATION_PRIORITIES = ("normal", "high")
MESSAGE_DIRECTIONS = ("inbound", "outbound")
MESSAGE_STATUSES = ("received", "queued", "sent", "delivered", "read", "failed")
MESSAGE_TYPES = ("text", "image", "audio", "video", "document", "location", "template")
WHATSAPP_PROVIDERS = ("Twilio", "GreenApi")
MESSAGE_SOURCES = ("whatsapp", "widget")


def company_fk(table_name: str) -> ForeignKeySpec:
    return ForeignKeySpec(
        f"FK_{table_name}_Companies_CompanyId", ("CompanyId",), "Companies", ondelete="CASCADE"
    )


def company_index(table_name: str, *, unique: bool = False) -> IndexSpec:
    return IndexSpec(f"IX_{table_name}_CompanyId", ("CompanyId",), unique=unique)


def int_id() -> ColumnSpec:
    return column("Id", "integer", nullable=False, identity=True)


def company_id() -> ColumnSpec:
    return column("CompanyId", "integer", nullable=False)


def created_at(default: Default | None = CURRENT_TIMESTAMP) -> ColumnSpec:
    return column("CreatedAt", "timestamptz", nullable=False, default=default)


def updated_at(default: Default | None = CURRENT_TIMESTAMP) -> ColumnSpec:
    return column("UpdatedAt", "timestamptz", nullable=False, default=default)


# ---------------------------------------------------------------------------
# Base tables
# ---------------------------------------------------------------------------


def companies() -> TableSpec:
    return table(
        "Companies",
        int_id(),
        varchar("Name", 200, nullable=False),
        varchar("ContactEmail", 255),
        created_at(),
    )


def users() -> TableSpec:
    return table(
        "Users",
        int_id(),
        company_id(),
        varchar("Email", 255, nullable=False),
        varchar("PasswordHash", 255, nullable=False),
        varchar("FullName", 200),
        created_at(),
        foreign_keys=[company_fk("Users")],
        indexes=[company_index("Users")],
    )


def customers() -> TableSpec:
    return table(
        "Customers",
        int_id(),
        company_id(),
        varchar("Email", 255),
        varchar("Phone", 20),
        varchar("FullName", 200),
        created_at(),
        foreign_keys=[company_fk("Customers")],
        indexes=[company_index("Customers")],
    )


def website_pages() -> TableSpec:
    return table(
        "WebsitePages",
        int_id(),
        company_id(),
        varchar("Name", 200, nullable=False),
        varchar("Slug", 255),
        varchar("PageType", 50, nullable=False),
        created_at(),
        foreign_keys=[company_fk("WebsitePages")],
        indexes=[company_index("WebsitePages")],
    )


def newsletter_subscribers() -> TableSpec:
    return table(
        "NewsletterSubscribers",
        int_id(),
        company_id(),
        varchar("Email", 255, nullable=False),
        column("IsActive", "boolean", nullable=False, default=Default.literal(True)),
        created_at(),
        foreign_keys=[company_fk("NewsletterSubscribers")],
        indexes=[company_index("NewsletterSubscribers")],
    )


def structural_components_settings() -> TableSpec:
    return table(
        "StructuralComponentsSettings",
        int_id(),
        company_id(),
        created_at(),
        updated_at(),
        column("WhatsAppWidgetConfig", "jsonb", nullable=False, default=Default.literal("{}")),
        foreign_keys=[company_fk("StructuralComponentsSettings")],
        indexes=[company_index("StructuralComponentsSettings", unique=True)],
    )


# ---------------------------------------------------------------------------
# WhatsApp
# ---------------------------------------------------------------------------


def whatsapp_configs() -> TableSpec:
    return table(
        "WhatsAppConfigs",
        column("Id", "uuid", nullable=False),
        company_id(),
        varchar("TwilioAccountSid", 500),
        varchar("TwilioAuthToken", 500),
        varchar("WhatsAppPhoneNumber", 20, nullable=False),
        varchar("WebhookUrl", 500, nullable=False),
        column("IsActive", "boolean", nullable=False, default=Default.literal(False)),
        column("UseSandbox", "boolean", nullable=False, default=Default.literal(True)),
        column("AutoReplySettings", "jsonb"),
        column("BusinessHours", "jsonb"),
        column("MessageTemplates", "jsonb"),
        column("AdditionalSettings", "jsonb"),
        varchar("WebhookToken", 100),
        column("RateLimitPerMinute", "integer", nullable=False, default=Default.literal(60)),
        column("RateLimitPerHour", "integer", nullable=False, default=Default.literal(1000)),
        column("MaxRetryAttempts", "integer", nullable=False, default=Default.literal(3)),
        column("RetryDelayMinutes", "integer", nullable=False, default=Default.literal(5)),
        created_at(None),
        updated_at(None),
        column("LastTestedAt", "timestamptz"),
        varchar("LastTestResult", 500),
        varchar("GreenApiInstanceId", 100),
        varchar("GreenApiToken", 500),
        varchar("GreenApiTokenMask", 100),
        varchar("Provider", 20, nullable=False, default="Twilio"),
        varchar("TwilioAccountSidMask", 100),
        varchar("TwilioAuthTokenMask", 100),
        varchar("HeaderName", 100, nullable=False, default="Authorization"),
        varchar("HeaderValueTemplate", 200, nullable=False, default="Bearer {secret}"),
        column("LastWebhookEventAt", "timestamptz"),
        varchar("WebhookSecret", 500),
        foreign_keys=[company_fk("WhatsAppConfigs")],
        indexes=[company_index("WhatsAppConfigs", unique=True)],
    )


def whatsapp_conversations() -> TableSpec:
    return table(
        "WhatsAppConversations",
        column("Id", "uuid", nullable=False),
        varchar("CustomerPhone", 20, nullable=False),
        varchar("CustomerName", 100),
        varchar("BusinessPhone", 20, nullable=False),
        varchar("Status", 20, nullable=False),
        varchar("Priority", 10, nullable=False),
        column("AssignedUserId", "integer"),
        company_id(),
        column("CustomerId", "integer"),
        column("UnreadCount", "integer", nullable=False, default=Default.literal(0)),
        column("MessageCount", "integer", nullable=False, default=Default.literal(0)),
        varchar("LastMessagePreview", 200),
        column("LastMessageAt", "timestamptz"),
        varchar("LastMessageSender", 10),
        column("Tags", "jsonb"),
        varchar("Notes", 1000),
        column("CustomerProfile", "jsonb"),
        column("Metadata", "jsonb"),
        column("StartedAt", "timestamptz", nullable=False),
        column("ClosedAt", "timestamptz"),
        column("ArchivedAt", "timestamptz"),
        created_at(None),
        updated_at(None),
        varchar("CustomerEmail", 255),
        varchar("SessionId", 100),
        varchar("Source", 20, nullable=False, default="whatsapp"),
        foreign_keys=[
            company_fk("WhatsAppConversations"),
            ForeignKeySpec(
                "FK_WhatsAppConversations_Customers_CustomerId",
                ("CustomerId",),
                "Customers",
                ondelete="SET NULL",
            ),
            ForeignKeySpec(
                "FK_WhatsAppConversations_Users_AssignedUserId",
                ("AssignedUserId",),
                "Users",
                ondelete="SET NULL",
            ),
        ],
        indexes=[
            IndexSpec(
                "IX_WhatsAppConversations_CompanyId_CustomerPhone_BusinessPhone",
                ("CompanyId", "CustomerPhone", "BusinessPhone"),
                unique=True,
            ),
            IndexSpec("IX_WhatsAppConversations_AssignedUserId", ("AssignedUserId",)),
            IndexSpec("IX_WhatsAppConversations_CustomerId", ("CustomerId",)),
            company_index("WhatsAppConversations"),
        ],
    )


def whatsapp_messages() -> TableSpec:
    return table(
        "WhatsAppMessages",
        column("Id", "uuid", nullable=False),
        varchar("TwilioSid", 100, nullable=False),
        varchar("From", 255, nullable=False),
        varchar("To", 255, nullable=False),
        varchar("Body", 4096),
        varchar("MessageType", 20, nullable=False),
        varchar("MediaUrl", 500),
        varchar("MediaContentType", 50),
        varchar("Direction", 10, nullable=False),
        varchar("Status", 20, nullable=False),
        varchar("ErrorCode", 10),
        varchar("ErrorMessage", 500),
        column("ConversationId", "uuid", nullable=False),
        company_id(),
        column("CustomerId", "integer"),
        column("RepliedByUserId", "integer"),
        column("Timestamp", "timestamptz", nullable=False),
        column("DeliveredAt", "timestamptz"),
        column("ReadAt", "timestamptz"),
        column("Metadata", "jsonb"),
        created_at(None),
        updated_at(None),
        varchar("SessionId", 100),
        varchar("Source", 20, nullable=False, default="whatsapp"),
        column("DeletedAt", "timestamptz"),
        column("DeletedByUserId", "integer"),
        column("IsDeleted", "boolean", nullable=False, default=Default.literal(False)),
        foreign_keys=[
            company_fk("WhatsAppMessages"),
            ForeignKeySpec(
                "FK_WhatsAppMessages_Customers_CustomerId",
                ("CustomerId",),
                "Customers",
                ondelete="SET NULL",
            ),
            ForeignKeySpec(
                "FK_WhatsAppMessages_Users_RepliedByUserId",
                ("RepliedByUserId",),
                "Users",
                ondelete="SET NULL",
            ),
            ForeignKeySpec(
                "FK_WhatsAppMessages_WhatsAppConversations_ConversationId",
                ("ConversationId",),
                "WhatsAppConversations",
                ondelete="CASCADE",
            ),
        ],
        indexes=[
            IndexSpec("IX_WhatsAppMessages_TwilioSid", ("TwilioSid",), unique=True),
            IndexSpec("IX_WhatsAppMessages_ConversationId", ("ConversationId",)),
            IndexSpec("IX_WhatsAppMessages_CustomerId", ("CustomerId",)),
            IndexSpec("IX_WhatsAppMessages_RepliedByUserId", ("RepliedByUserId",)),
            company_index("WhatsAppMessages"),
            IndexSpec("IX_WhatsAppMessages_SessionId", ("SessionId",)),
        ],
    )


# ---------------------------------------------------------------------------
# Contact form
# ---------------------------------------------------------------------------


def contact_messages() -> TableSpec:
    return table(
        "ContactMessages",
        int_id(),
        company_id(),
        varchar("Name", 100, nullable=False),
        varchar("Email", 100, nullable=False),
        varchar("Phone", 20),
        varchar("Subject", 200),
        varchar("Message", 5000, nullable=False),
        varchar("Source", 50),
        varchar("Status", 20, nullable=False),
        column("IsNotificationSent", "boolean", nullable=False, default=Default.literal(False)),
        varchar("IpAddress", 45),
        varchar("UserAgent", 500),
        column("ReadAt", "timestamptz"),
        created_at(None),
        foreign_keys=[company_fk("ContactMessages")],
        indexes=[company_index("ContactMessages")],
    )


def contact_notification_settings() -> TableSpec:
    return table(
        "ContactNotificationSettings",
        int_id(),
        company_id(),
        column("EnableEmailNotification", "boolean", nullable=False, default=Default.literal(True)),
        varchar("NotificationEmailAddress", 100),
        varchar("EmailSubjectTemplate", 200, nullable=False),
        column("EnableToastNotification", "boolean", nullable=False, default=Default.literal(True)),
        varchar("ToastSuccessMessage", 200, nullable=False),
        varchar("ToastErrorMessage", 200, nullable=False),
        created_at(None),
        updated_at(None),
        foreign_keys=[company_fk("ContactNotificationSettings")],
        indexes=[company_index("ContactNotificationSettings", unique=True)],
    )


# ---------------------------------------------------------------------------
# Publishing, email, notifications, demo
# ---------------------------------------------------------------------------


def published_snapshots() -> TableSpec:
    return table(
        "PublishedSnapshots",
        int_id(),
        company_id(),
        column("PageId", "integer", nullable=False),
        varchar("PageSlug", 255),
        varchar("PageType", 50, nullable=False),
        column("SnapshotData", "jsonb", nullable=False),
        column("Version", "integer", nullable=False),
        column("IsStale", "boolean", nullable=False),
        column("PublishedAt", "timestamptz", nullable=False, default=CURRENT_TIMESTAMP),
        created_at(),
        foreign_keys=[
            company_fk("PublishedSnapshots"),
            ForeignKeySpec(
                "FK_PublishedSnapshots_WebsitePages_PageId",
                ("PageId",),
                "WebsitePages",
                ondelete="CASCADE",
            ),
        ],
        indexes=[
            IndexSpec("IX_PublishedSnapshots_Lookup", ("CompanyId", "PageSlug", "IsStale")),
            IndexSpec("IX_PublishedSnapshots_Version", ("PageId", "Version"), unique=True),
        ],
    )


def email_provider_settings() -> TableSpec:
    return table(
        "EmailProviderSettings",
        int_id(),
        company_id(),
        varchar("Provider", 50, nullable=False),
        varchar("ApiKey", 1000),
        varchar("ApiKeyMask", 120),
        varchar("FromEmail", 255),
        varchar("FromName", 255),
        column("IsActive", "boolean", nullable=False),
        created_at(None),
        updated_at(None),
        foreign_keys=[company_fk("EmailProviderSettings")],
        indexes=[company_index("EmailProviderSettings", unique=True)],
    )


def notifications() -> TableSpec:
    return table(
        "Notifications",
        int_id(),
        company_id(),
        varchar("Type", 50, nullable=False),
        varchar("Title", 200, nullable=False),
        varchar("Message", 1000),
        column("Data", "jsonb"),
        column("IsRead", "boolean", nullable=False),
        created_at(None),
        column("ReadAt", "timestamptz"),
        varchar("RelatedEntityType", 50),
        varchar("RelatedEntityId", 100),
        foreign_keys=[company_fk("Notifications")],
        indexes=[IndexSpec("IX_Notifications_CompanyId_IsRead", ("CompanyId", "IsRead"))],
    )


def perros() -> TableSpec:
    return table(
        "Perros",
        int_id(),
        column("Nombre", "text", nullable=False),
        column("Raza", "text", nullable=False),
        column("Edad", "integer", nullable=False),
        created_at(None),
    )


def green_api_whatsapp_configs() -> TableSpec:
    """Retired GreenApi settings table.

    Created by the initial schema and dropped by AddPerroTable (the GreenApi
    fields moved onto WhatsAppConfigs). Not part of the target schema.
    """
    return table(
        "GreenApiWhatsAppConfigs",
        column("Id", "uuid", nullable=False),
        company_id(),
        column("AdditionalSettings", "jsonb"),
        varchar("ApiToken", 500, nullable=False),
        column("AutoAcknowledgeMessages", "boolean", nullable=False),
        varchar("AutoReplyMessage", 1000),
        column("BlacklistedNumbers", "jsonb"),
        column("BusinessHoursEnd", "interval"),
        column("BusinessHoursStart", "interval"),
        created_at(),
        column("EnableWebhook", "boolean", nullable=False),
        varchar("InstanceId", 50, nullable=False),
        column("IsActive", "boolean", nullable=False),
        varchar("LastTestResult", 500),
        column("LastTestedAt", "timestamptz"),
        varchar("PhoneNumber", 20, nullable=False),
        column("PollingIntervalSeconds", "integer", nullable=False),
        column("RateLimitSettings", "jsonb"),
        updated_at(),
        varchar("WebhookUrl", 500),
        foreign_keys=[company_fk("GreenApiWhatsAppConfigs")],
        indexes=[
            company_index("GreenApiWhatsAppConfigs", unique=True),
            IndexSpec("IX_GreenApiWhatsAppConfigs_InstanceId", ("InstanceId",)),
            IndexSpec("IX_GreenApiWhatsAppConfigs_IsActive", ("IsActive",)),
            IndexSpec("IX_GreenApiWhatsAppConfigs_PhoneNumber", ("PhoneNumber",)),
        ],
    )


def target_schema() -> SchemaState:
    """The schema once every step has been applied."""
    return SchemaState.of(
        companies(),
        users(),
        customers(),
        website_pages(),
        newsletter_subscribers(),
        structural_components_settings(),
        whatsapp_configs(),
        whatsapp_conversations(),
        whatsapp_messages(),
        contact_messages(),
        contact_notification_settings(),
        published_snapshots(),
        email_provider_settings(),
        notifications(),
        perros(),
    )


def build_metadata() -> sa.MetaData:
    """SQLAlchemy metadata for the data-access layer."""
    return target_schema().to_metadata()


metadata = build_metadata()
