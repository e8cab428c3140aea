from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "CASHDESK"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite+pysqlite:///./cashdesk.db"
    ELEVATED_ROLES: str = "ELEVATED,MASTER,ADMIN,MANAGER"
    CASH_SESSION_LIST_MAX_PAGE_SIZE: int = 200
    METRICS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    @property
    def elevated_roles(self) -> set[str]:
        return {role.strip().upper() for role in self.ELEVATED_ROLES.split(",") if role.strip()}


settings = Settings()
