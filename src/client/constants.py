"""Constants for the Codicent facade."""

# Service defaults
DEFAULT_BASE_URL = "https://codicent.com/"
DEFAULT_MESSAGE_TYPE = "info"

# Endpoint paths, relative to the base URL
ADD_CHAT_MESSAGE_PATH = "app/AddChatMessage"
GET_CHAT_MESSAGES_PATH = "app/GetChatMessages"
UPLOAD_FILE_PATH = "app/UploadFile"
GET_FILE_INFO_PATH = "app/GetFileInfo"
FIND_DATA_MESSAGES_PATH = "app/FindDataMessages"
START_AI_CHAT_PATH = "app/StartAi2ChatAsync"
AI_CHAT_REPLY_STATUS_PATH = "app/GetAi2ChatReplyStatus"

# Message listing defaults
DEFAULT_PAGE_START = 0
DEFAULT_PAGE_LENGTH = 10

# AI reply polling
DEFAULT_MAX_POLLING_SECONDS = 5 * 60.0
DEFAULT_POLLING_INTERVAL_SECONDS = 2.0
AI_MENTION_ALIASES = ("@codicent-mini",)

# Tag marking a data message as deleted
HIDDEN_TAG = "hidden"
