"""Application-wide constants and configuration values."""

# Table names
STAGES_TABLE = "interview_stages"
CANDIDATES_TABLE = "interview_candidates"
EVENTS_TABLE = "interview_events"
INVITATIONS_TABLE = "interview_invitations"
RESPONSES_TABLE = "interview_responses"

# Realtime
REALTIME_SCHEMA = "public"
LIVE_INDICATOR_SECONDS = 5.0
EVENT_SOCKET_QUEUE_SIZE = 8

# Invitations
INVITATION_EXPIRY_DAYS = 7
INVITATION_TOKEN_BYTES = 32

# Edge functions
SEND_INVITATION_FUNCTION = "send-interview-invitation"
SEND_STATUS_FUNCTION = "send-status-notification"
ANALYZE_RESUME_FUNCTION = "analyze-resume"
EVALUATE_STAGE_FUNCTION = "evaluate-interview-stage"

# AI auto-progress
AUTO_PROGRESS_STAGE_DELAY_SECONDS = 1.0
DEFAULT_PRIOR_AI_SCORE = 70
AI_SCORING_ATTEMPTS = 2

# Stage names that mark a fully automated pre-screen
AUTOMATED_PRESCREEN_MARKERS = ("ai phone interview", "ai phone screen", "ai_phone_screen", "pre-screen", "prescreen")

# Logs
LOGS_DIR = "logs"
REMEDIATION_LOG_FILE = "pipeline_remediation.log"
