"""Length limits, in characters, applied after trimming.

Kept apart from config so the HTTP client can import them without loading
server settings.
"""

MESSAGE_MAX_LENGTH = 500
REPLY_MAX_LENGTH = 2000
SECRET_MAX_LENGTH = 128
