"""Report types, warning taxonomy, and batch post-actions.

Report types
------------
A *report* ("Value-Add") is a per-household document rendered on demand by
the external rendering service.  A surge enables a subset of these types;
new surges start with ``DEFAULT_REPORT_TYPES``.

BUCKETS     : income bucket allocation worksheet
GUARDRAILS  : distribution guardrails projection
BENEFICIARY : beneficiary designation summary
NET_WORTH   : household net worth statement
HOMEWORK    : pre-meeting homework sheet

Warning codes
-------------
Data-quality concerns for a household relative to a surge.  Computed at
build time and attached to the snapshot; never stored on their own.
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Report types
# ---------------------------------------------------------------------------

REPORT_BUCKETS = "BUCKETS"
REPORT_GUARDRAILS = "GUARDRAILS"
REPORT_BENEFICIARY = "BENEFICIARY"
REPORT_NET_WORTH = "NET_WORTH"
REPORT_HOMEWORK = "HOMEWORK"

REPORT_TYPES: tuple[str, ...] = (
    REPORT_BUCKETS,
    REPORT_GUARDRAILS,
    REPORT_BENEFICIARY,
    REPORT_NET_WORTH,
    REPORT_HOMEWORK,
)

VALID_REPORT_TYPES: frozenset[str] = frozenset(REPORT_TYPES)

#: Enabled on every newly created surge, in this order.
DEFAULT_REPORT_TYPES: tuple[str, ...] = (
    REPORT_BUCKETS,
    REPORT_GUARDRAILS,
    REPORT_BENEFICIARY,
    REPORT_NET_WORTH,
)

#: Report types that depend on systematic withdrawals being configured.
WITHDRAWAL_REPORT_TYPES: frozenset[str] = frozenset({REPORT_BUCKETS, REPORT_GUARDRAILS})

# ---------------------------------------------------------------------------
# Warning taxonomy
# ---------------------------------------------------------------------------

WARN_NO_ACCOUNTS = "NO_ACCOUNTS"
WARN_NO_BRANDING = "NO_BRANDING"
WARN_NO_ADVISOR = "NO_ADVISOR"
WARN_NO_SYSTEMATIC_WITHDRAWAL = "NO_SYSTEMATIC_WITHDRAWAL"
WARN_MISSING_ALLOCATION = "MISSING_ALLOCATION"

WARNING_TYPES: dict[str, dict[str, str]] = {
    WARN_NO_ACCOUNTS: {
        "severity": "critical",
        "label": "No Accounts",
    },
    WARN_NO_BRANDING: {
        "severity": "warning",
        "label": "Missing Organization Logo",
    },
    WARN_NO_ADVISOR: {
        "severity": "warning",
        "label": "No Advisor Assigned",
    },
    WARN_NO_SYSTEMATIC_WITHDRAWAL: {
        "severity": "info",
        "label": "No Systematic Withdrawals",
    },
    WARN_MISSING_ALLOCATION: {
        "severity": "info",
        "label": "Some accounts missing asset allocation",
    },
}

VALID_WARNING_CODES: frozenset[str] = frozenset(WARNING_TYPES)

#: Pseudo-codes accepted by the household list warning filter.
WARN_FILTER_ANY = "ANY"
WARN_FILTER_NONE = "NONE"

# ---------------------------------------------------------------------------
# Batch post-actions
# ---------------------------------------------------------------------------

ACTION_SAVE = "save"
ACTION_SAVE_DOWNLOAD = "save-download"
ACTION_SAVE_PRINT = "save-print"

VALID_POST_ACTIONS: frozenset[str] = frozenset({ACTION_SAVE, ACTION_SAVE_DOWNLOAD, ACTION_SAVE_PRINT})

# ---------------------------------------------------------------------------
# Push-channel events
# ---------------------------------------------------------------------------

EVENT_PROGRESS = "progress"
EVENT_ALL_DONE = "allDone"
