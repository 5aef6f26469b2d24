from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./scoreboard.db"
    SECRET_KEY: str = "YOUR_SECRET_KEY_HERE"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    DEFAULT_SEEDING_ROUNDS: int = 3
    BYE_RESOLUTION_MAX_ITERATIONS: int = 200 # Safety cap for the bye fixed point loop
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
