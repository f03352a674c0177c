import os

class Settings:
    # Outbound probing
    REQUEST_TIMEOUT_MS: int = int(os.getenv("REQUEST_TIMEOUT_MS", "3000"))
    DNS_TIMEOUT_MS: int = int(os.getenv("DNS_TIMEOUT_MS", "3000"))
    MAX_REDIRECTS: int = int(os.getenv("MAX_REDIRECTS", "3"))
    MAX_URL_LENGTH: int = int(os.getenv("MAX_URL_LENGTH", "2048"))
    USER_AGENT: str = os.getenv("USER_AGENT", "ServerTimeProbe/1.0")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text").lower()

settings = Settings()
