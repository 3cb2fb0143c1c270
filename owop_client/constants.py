"""
Protocol constants shared by the codec and the client.
"""

# World geometry
DEFAULT_CHUNK_SIZE = 16
WORLD_BORDER = 0xFFFFFF
WORLD_UNITS_PER_PIXEL = 16

# World join
MAX_WORLD_NAME_LENGTH = 24
WORLD_VERIFICATION = 25565
DEFAULT_WORLD = "main"

# Chat
CHAT_VERIFICATION = "\n"
MAX_CHAT_BUFFER = 256
# Maximum chat message length by rank value
MAX_MESSAGE_LENGTH = {0: 128, 1: 128, 2: 512, 3: 16384}
BAN_MESSAGE_PREFIX = "You are banned"
DEV_MESSAGE_PREFIX = "DEV"
HTML_MESSAGE_PREFIX = "<"

# Captcha
TOKEN_VERIFICATION = "CaptchA"
CAPTCHA_PASS_PREFIX = "LETMEINPLZ"

# Pixel quota used until the server pushes its own
DEFAULT_PQUOTA_RATE = 32
DEFAULT_PQUOTA_PERIOD = 4

# Wire sizes
PLAYER_ENTRY_SIZE = 16
PIXEL_ENTRY_SIZE = 15
DISCONNECT_ENTRY_SIZE = 4
CHUNK_HEADER_SIZE = 10

# Connection
DEFAULT_SERVER_URL = "wss://ourworldofpixels.com"
DEFAULT_ORIGIN = "https://ourworldofpixels.com"
DEFAULT_RECONNECT_TIME = 5.0
