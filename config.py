# config.py
"""Configuration file for the trade vision signal journal"""

import os

# Local Storage Configuration
STORE_PATH = os.environ.get("TRADEVISION_STORE", "tradevision_store.json")
SESSION_KEY = "tv_session"  # Active session (single user profile)
USERS_KEY = "tv_users"  # User directory (list of user profiles)

# Gemini Configuration
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "your_gemini_api_key_here")
GEMINI_MODEL = "gemini-2.5-flash"
GEMINI_TEMPERATURE = 0.2
GEMINI_MAX_OUTPUT_TOKENS = 1024

# Plan Configuration
FREE_SIGNAL_LIMIT = 5  # Lifetime signals available on the Free plan
EXPIRING_SOON_DAYS = 5  # Paid plans expiring within this many days are flagged

# Default settings for new accounts
DEFAULT_SETTINGS = {
    "accountSize": 1000,
    "riskPercentage": 1,
    "accountType": "Standard",
    "notifications": {
        "signals": True,
        "marketAlerts": True,
        "updates": True,
    },
}
DEFAULT_ID_THEME = "cyan"

# Risk Management Configuration
MIN_LOT_SIZE = 0.01  # Broker minimum tradeable volume
LOT_SIZE_DIGITS = 2
MONEY_DIGITS = 2
TP1_REWARD_MULTIPLE = 1  # Derived TP1 at 1:1
TP2_REWARD_MULTIPLE = 2  # Derived TP2 at 1:2

# Instrument Configuration (per asset class)
# pip_size: minimum meaningful price increment
# pip_value: account currency value of one pip for one standard lot
# digits: price precision used when rounding entry/SL/TP
INSTRUMENTS = {
    "METAL": {"pip_size": 0.1, "pip_value": 10.0, "digits": 2},
    "JPY_CROSS": {"pip_size": 0.01, "pip_value": 10.0, "digits": 3},
    "STANDARD_FX": {"pip_size": 0.0001, "pip_value": 10.0, "digits": 5},
}
METAL_MARKERS = ["XAU", "GOLD"]
JPY_MARKERS = ["JPY"]

# Logging Configuration
LOG_LEVEL = "INFO"  # DEBUG, INFO, WARNING, ERROR
LOG_FILE = "tradevision.log"
LOG_ENCODING = "utf-8"  # UTF-8 encoding for proper emoji support
