from pydantic_settings import BaseSettings
from typing import Dict, Optional

class Settings(BaseSettings):
    # API Configuration
    APP_NAME: str = "Mail Detective"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Reputation Source Credentials
    VIRUSTOTAL_API_KEY: Optional[str] = None
    URLVOID_API_KEY: Optional[str] = None
    PHISHTANK_APP_KEY: Optional[str] = None
    HUNTER_API_KEY: Optional[str] = None

    # Aggregation Settings
    SOURCE_TIMEOUT_SECONDS: float = 10.0
    AGGREGATE_TIMEOUT_SECONDS: float = 30.0
    MAX_SOURCE_WORKERS: int = 4

    # Curated detection lists (packaged JSON is used when unset)
    DETECTION_LISTS_PATH: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True

    def credentials(self) -> Dict[str, Optional[str]]:
        """Map provider name -> secret; blank keys count as unconfigured"""
        raw = {
            'virustotal': self.VIRUSTOTAL_API_KEY,
            'urlvoid': self.URLVOID_API_KEY,
            'phishtank': self.PHISHTANK_APP_KEY,
            'hunter': self.HUNTER_API_KEY,
        }
        return {name: (key.strip() or None) if key else None for name, key in raw.items()}

settings = Settings()
