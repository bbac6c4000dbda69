from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    mongodb_uri: str = "mongodb://localhost:27017"
    database_name: str = "chunkmaster"
    jwt_secret: str = "change-me"
    jwt_expire_minutes: int = 10080  # 7 days
    log_level: str = "INFO"
    max_text_length: int = 10000  # characters per pasted material or attempt

    class Config:
        env_file = ".env"


settings = Settings()
