'''
Holds all the configurations
'''
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """
    Manages application configuration using environment variables.
    """
    # Application Metadata
    APP_NAME: str = "TutorBooking Backend"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Appointment scheduling engine for the TutorBooking marketplace."
    TEST_MODE: bool = False

    # Database URL
    DATABASE_URL_PROD: str
    DATABASE_URL_TEST: str = "sqlite+aiosqlite://"
    AUTO_CREATE_SCHEMA: bool = False
    @property
    def database_url(self) -> str:
        """
        Dynamically returns the correct database URL based on the test_mode flag.
        """
        if self.TEST_MODE:
            return self.DATABASE_URL_TEST
        return self.DATABASE_URL_PROD

    # JWT Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    # Login endpoint of the identity service, advertised in the OpenAPI docs
    TOKEN_URL: str = "/auth/login"

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = []

    # Scheduling rules
    DEFAULT_LESSON_MINUTES: int = 60
    DEFAULT_SLOT_STEP_MINUTES: int = 30
    CANCELLATION_NOTICE_HOURS: int = 24

    class Config:
        env_file = ".env" # automatically loads the .env

# Create a single, importable instance of the settings
settings = Settings()
