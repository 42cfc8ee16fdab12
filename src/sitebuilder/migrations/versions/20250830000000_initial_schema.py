"""Initial schema: base tables, WhatsApp, GreenApi and contact form.

Revision ID: 20250830000000
Revises:
Create Date: 2025-08-30

Reconstructs the schema that existed before the tracked history began, so the
sequence applies from an empty database.
"""

from sitebuilder.migrations.ops import CreateTable, Operation
from sitebuilder.schema.entities import (
    company_fk,
    company_id,
    company_index,
    created_at,
    green_api_whatsapp_configs,
    int_id,
    updated_at,
)
from sitebuilder.schema.model import (
    CURRENT_TIMESTAMP,
    Default,
    ForeignKeySpec,
    IndexSpec,
    column,
    table,
    varchar,
)

revision = "20250830000000"
down_revision = None
name = "InitialSchema"


def upgrade() -> list[Operation]:
    return [
        CreateTable(
            table(
                "Companies",
                int_id(),
                varchar("Name", 200, nullable=False),
                varchar("ContactEmail", 255),
                created_at(),
            )
        ),
        CreateTable(
            table(
                "Users",
                int_id(),
                company_id(),
                varchar("Email", 255, nullable=False),
                column("PasswordHash", "text", nullable=False),
                varchar("FullName", 200),
                created_at(),
                foreign_keys=[company_fk("Users")],
                indexes=[company_index("Users")],
            )
        ),
        CreateTable(
            table(
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
        ),
        CreateTable(
            table(
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
        ),
        CreateTable(
            table(
                "NewsletterSubscribers",
                int_id(),
                company_id(),
                varchar("Email", 255, nullable=False),
                column("IsActive", "boolean", nullable=False, default=Default.literal(True)),
                created_at(),
                varchar("ConfirmationToken", 255),
                column("EmailConfirmed", "boolean", nullable=False, default=Default.literal(False)),
                column("EmailConfirmedAt", "timestamptz"),
                varchar("UnsubscribeToken", 255),
                foreign_keys=[company_fk("NewsletterSubscribers")],
                indexes=[company_index("NewsletterSubscribers")],
            )
        ),
        CreateTable(
            table(
                "StructuralComponentsSettings",
                int_id(),
                company_id(),
                created_at(),
                updated_at(),
                foreign_keys=[company_fk("StructuralComponentsSettings")],
                indexes=[company_index("StructuralComponentsSettings", unique=True)],
            )
        ),
        CreateTable(
            table(
                "WhatsAppConfigs",
                column("Id", "uuid", nullable=False),
                company_id(),
                varchar("TwilioAccountSid", 500, nullable=False, default=""),
                varchar("TwilioAuthToken", 500, nullable=False, default=""),
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
                created_at(),
                updated_at(),
                column("LastTestedAt", "timestamptz"),
                varchar("LastTestResult", 500),
                foreign_keys=[company_fk("WhatsAppConfigs")],
                indexes=[
                    company_index("WhatsAppConfigs", unique=True),
                    IndexSpec("IX_WhatsAppConfigs_IsActive", ("IsActive",)),
                    IndexSpec("IX_WhatsAppConfigs_WhatsAppPhoneNumber", ("WhatsAppPhoneNumber",)),
                ],
            )
        ),
        CreateTable(
            table(
                "WhatsAppConversations",
                column("Id", "uuid", nullable=False),
                varchar("CustomerPhone", 20, nullable=False),
                varchar("CustomerName", 100),
                varchar("BusinessPhone", 20, nullable=False),
                varchar("Status", 20, nullable=False, default="active"),
                varchar("Priority", 10, nullable=False, default="normal"),
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
                column("StartedAt", "timestamptz", nullable=False, default=CURRENT_TIMESTAMP),
                column("ClosedAt", "timestamptz"),
                column("ArchivedAt", "timestamptz"),
                created_at(),
                updated_at(),
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
                    IndexSpec("IX_WhatsAppConversations_LastMessageAt", ("LastMessageAt",)),
                    IndexSpec("IX_WhatsAppConversations_Priority", ("Priority",)),
                    IndexSpec("IX_WhatsAppConversations_Status", ("Status",)),
                    IndexSpec(
                        "IX_WhatsAppConversations_UnreadCount",
                        ("UnreadCount",),
                        where='"UnreadCount" > 0',
                    ),
                ],
            )
        ),
        CreateTable(
            table(
                "WhatsAppMessages",
                column("Id", "uuid", nullable=False),
                varchar("TwilioSid", 100, nullable=False),
                varchar("From", 20, nullable=False),
                varchar("To", 20, nullable=False),
                varchar("Body", 4096),
                varchar("MessageType", 20, nullable=False, default="text"),
                varchar("MediaUrl", 500),
                varchar("MediaContentType", 50),
                varchar("Direction", 10, nullable=False, default="inbound"),
                varchar("Status", 20, nullable=False, default="received"),
                varchar("ErrorCode", 10),
                varchar("ErrorMessage", 500),
                column("ConversationId", "uuid", nullable=False),
                company_id(),
                column("CustomerId", "integer"),
                column("RepliedByUserId", "integer"),
                column("Timestamp", "timestamptz", nullable=False, default=CURRENT_TIMESTAMP),
                column("DeliveredAt", "timestamptz"),
                column("ReadAt", "timestamptz"),
                column("Metadata", "jsonb"),
                created_at(),
                updated_at(),
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
                    IndexSpec("IX_WhatsAppMessages_Direction", ("Direction",)),
                    IndexSpec("IX_WhatsAppMessages_From", ("From",)),
                    IndexSpec("IX_WhatsAppMessages_To", ("To",)),
                    IndexSpec("IX_WhatsAppMessages_Status", ("Status",)),
                    IndexSpec("IX_WhatsAppMessages_Timestamp", ("Timestamp",)),
                    IndexSpec(
                        "IX_WhatsAppMessages_ReadAt",
                        ("ReadAt",),
                        where="\"ReadAt\" IS NULL AND \"Direction\" = 'inbound'",
                    ),
                    IndexSpec(
                        "IX_WhatsAppMessages_CompanyId_ConversationId",
                        ("CompanyId", "ConversationId"),
                    ),
                ],
            )
        ),
        CreateTable(green_api_whatsapp_configs()),
        CreateTable(
            table(
                "ContactMessages",
                int_id(),
                company_id(),
                varchar("Name", 100, nullable=False),
                varchar("Email", 255, nullable=False),
                varchar("Phone", 20),
                varchar("Subject", 200),
                varchar("Message", 5000, nullable=False),
                varchar("Source", 50),
                varchar("Status", 50, nullable=False, default="unread"),
                column("IsNotificationSent", "boolean", nullable=False, default=Default.literal(False)),
                varchar("IpAddress", 45),
                varchar("UserAgent", 500),
                column("ReadAt", "timestamptz"),
                created_at(),
                foreign_keys=[company_fk("ContactMessages")],
                indexes=[
                    company_index("ContactMessages"),
                    IndexSpec("IX_ContactMessages_CreatedAt", ("CreatedAt",)),
                    IndexSpec("IX_ContactMessages_Email", ("Email",)),
                    IndexSpec("IX_ContactMessages_IsNotificationSent", ("IsNotificationSent",)),
                    IndexSpec("IX_ContactMessages_Status", ("Status",)),
                ],
            )
        ),
        CreateTable(
            table(
                "ContactNotificationSettings",
                int_id(),
                company_id(),
                column(
                    "EnableEmailNotification", "boolean", nullable=False, default=Default.literal(True)
                ),
                varchar("NotificationEmailAddress", 255, nullable=False, default=""),
                varchar(
                    "EmailSubjectTemplate",
                    200,
                    nullable=False,
                    default="New Contact Message from {name}",
                ),
                column(
                    "EnableToastNotification", "boolean", nullable=False, default=Default.literal(True)
                ),
                varchar(
                    "ToastSuccessMessage", 100, nullable=False, default="Message sent successfully!"
                ),
                varchar(
                    "ToastErrorMessage",
                    100,
                    nullable=False,
                    default="Error sending message. Please try again.",
                ),
                created_at(),
                updated_at(),
                foreign_keys=[company_fk("ContactNotificationSettings")],
                indexes=[company_index("ContactNotificationSettings", unique=True)],
            )
        ),
    ]
