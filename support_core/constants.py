"""Global constants for the Support Core bot."""

from __future__ import annotations

# ============================================================================
# Store
# ============================================================================

STORE_MAX_RETRIES = 5
STORE_CONNECT_TIMEOUT_SECONDS = 5.0

MEMBERSHIPS_KEY = ("memberships",)
ACTIVE_TICKETS_KEY = ("activeTickets",)
CLAIMED_TICKETS_KEY = ("claimedTickets",)
ESCALATED_TICKETS_KEY = ("escalatedTickets",)

# ============================================================================
# Time Conversion
# ============================================================================

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR

# ============================================================================
# Tickets
# ============================================================================

TICKET_FORM_TIMEOUT_SECONDS = 300  # 5 minutes to submit the ticket form
TICKET_DELETE_DELAY_SECONDS = 5
TICKET_CHANNEL_NAME_MAX_LENGTH = 95
TICKET_STATUS_SCAN_LIMIT = 10  # recent messages searched for the status embed

CLAIM_BUTTON_ID = "claim_ticket"
CLOSE_BUTTON_ID = "close_ticket"

TRANSCRIPT_VIEWER_URL = "https://mahto.id/chat-exporter?url={url}"

# ============================================================================
# Memberships
# ============================================================================

PERMANENT_DURATION_TOKENS = frozenset({"perm", "permanent"})
EXPIRY_SWEEP_INTERVAL_MINUTES = 5

# ============================================================================
# Embed Limits (Discord API limits)
# ============================================================================

EMBED_FIELD_VALUE_MAX_LENGTH = 1024
