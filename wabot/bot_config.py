"""
Central bot policy: single source of truth for the opt-in gate, history,
reconnect and collaborator limits.
"""

# ── Opt-in gate ──
HISTORY_LIMIT = 5                   # messages kept per sender
MUTE_DURATION_SECONDS = 60 * 60     # "no" silences the AI for 1 hour

CONSENT_YES = frozenset({"yes", "ya"})
CONSENT_NO = frozenset({"no", "tidak"})

# ── Fixed replies ──
CONSENT_PROMPT = (
    "Do you want to chat with AI? Reply 'yes' to talk with the AI "
    "or 'no' if you don't want AI replies."
)
WELCOME_REPLY = "Hello, what would you like to ask? 😊"
GOODBYE_REPLY = "Okay, see you next time."
APOLOGY_REPLY = "Sorry, I can't answer your question right now."
EMPTY_DIRECTORY_REPLY = "No applicants found yet."

# ── Commands ──
DIRECTORY_COMMAND = "list applicants"

# ── AI ──
AI_TIMEOUT_SECONDS = 30
AI_MAX_REPLY_CHARS = 1500
AI_GLOBAL_MAX_CALLS = 15            # per window, across all senders
AI_GLOBAL_WINDOW_SECONDS = 60
AI_MAX_RETRIES = 2
AI_RETRY_DELAYS = [5, 10]           # seconds

# ── Reconnect ──
RECONNECT_MAX_ATTEMPTS = 10
RECONNECT_BASE_DELAY = 1.0          # seconds, doubled per attempt after the first
RECONNECT_MAX_DELAY = 30.0

# ── Housekeeping ──
SESSION_PRUNE_INTERVAL = 600        # seconds between idle-cache sweeps
