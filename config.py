"""
Configuration for the support ticket desk.
For production, set these through environment variables.
"""
import os

BASE_DIR = os.path.dirname(__file__)


def _csv(value: str) -> list:
    return [v.strip() for v in value.split(',') if v.strip()]


# ============ Database ============
DB_PATH = os.getenv('DB_PATH', os.path.join(BASE_DIR, 'ticket_desk.db'))

# ============ Ticket Lifecycle ============
TICKET_ID_PREFIX = os.getenv('TICKET_ID_PREFIX', 'A')
DEFAULT_NEW_DISPOSITION = os.getenv('DEFAULT_NEW_DISPOSITION', 'New')
DEFAULT_NEW_STATUS = os.getenv('DEFAULT_NEW_STATUS', 'Open')

# Statuses that end a ticket's life. Legacy installations use "Resolved,Dropped".
TERMINAL_STATUSES = _csv(os.getenv('TERMINAL_STATUSES', 'Closed'))

# What to do when a disposition has no resolvable parent status:
#   reject  - refuse the update
#   keep    - store the disposition, leave status untouched
#   default - store the disposition with FALLBACK_STATUS
UNRESOLVED_DISPOSITION_POLICY = os.getenv('UNRESOLVED_DISPOSITION_POLICY', 'reject').lower()
FALLBACK_STATUS = os.getenv('FALLBACK_STATUS', 'Ongoing')

# ============ AWS S3 Attachments ============
AWS_ACCESS_KEY_ID = os.getenv('AWS_ACCESS_KEY_ID', '')
AWS_SECRET_ACCESS_KEY = os.getenv('AWS_SECRET_ACCESS_KEY', '')
AWS_REGION = os.getenv('AWS_REGION', 'ap-south-1')
AWS_S3_BUCKET = os.getenv('AWS_S3_BUCKET', '')
SIGNED_URL_EXPIRY_SECONDS = int(os.getenv('SIGNED_URL_EXPIRY_SECONDS', '3600'))

MAX_FILE_SIZE_BYTES = int(os.getenv('MAX_FILE_SIZE_BYTES', str(50 * 1024 * 1024)))
MAX_FILES_PER_TICKET = int(os.getenv('MAX_FILES_PER_TICKET', '5'))
ALLOWED_FILE_TYPES = [
    'image/jpeg',
    'image/png',
    'image/gif',
    'video/mp4',
    'video/avi',
    'video/mov',
    'video/wmv',
    'video/flv',
    'video/webm',
    'video/mkv',
    'application/pdf',
    'text/plain',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
]

# ============ WhatsApp Gateway (Gallabox) ============
WHATSAPP_API_URL = os.getenv('WHATSAPP_API_URL', 'https://server.gallabox.com/devapi/messages/whatsapp')
WHATSAPP_API_KEY = os.getenv('WHATSAPP_API_KEY', '')
WHATSAPP_API_SECRET = os.getenv('WHATSAPP_API_SECRET', '')
WHATSAPP_CHANNEL_ID = os.getenv('WHATSAPP_CHANNEL_ID', '')
WHATSAPP_COUNTRY_CODE = os.getenv('WHATSAPP_COUNTRY_CODE', '91')
WHATSAPP_TIMEOUT = int(os.getenv('WHATSAPP_TIMEOUT', '30'))

# Disposition -> template name. Dispositions not listed send nothing.
WHATSAPP_TEMPLATES = {
    'New': 'ticket_generated_c1',
    'In Progress': 'ticket_in_progress_c1',
    'No Response 1': 'ticket_no_response_1_c1',
    'Resolved': 'ticket_resolved_c1',
    'No Response 2': 'ticket_no_response_2_c1',
}
EXTERNAL_REMARKS_EVENT = 'External Remarks'
WHATSAPP_EVENT_TEMPLATES = {
    EXTERNAL_REMARKS_EVENT: 'ticket_ext_remarks_c1',
}

# ============ Admin Auth ============
JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'ticket-desk-secret-change-in-production')
JWT_ALGORITHM = 'HS256'
JWT_EXPIRY_HOURS = int(os.getenv('JWT_EXPIRY_HOURS', '12'))

# ============ Automation Settings ============
AUTO_REASSIGN_ENABLED = os.getenv('AUTO_REASSIGN', 'false').lower() == 'true'
REASSIGN_INTERVAL_MINUTES = int(os.getenv('REASSIGN_INTERVAL_MINUTES', '15'))

# ============ Logging ============
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
