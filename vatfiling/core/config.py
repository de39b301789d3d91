from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "VAT Filing Service"

    # Root directory uploaded files are read from (storage_path is relative to it)
    STORAGE_ROOT: str = "./storage"

    # Files imported concurrently per batch request
    IMPORT_MAX_WORKERS: int = 4

    # Direction used when neither tax id nor format code identifies it
    DEFAULT_IN_OR_OUT: str = "in"

    LOG_LEVEL: str = "INFO"

    class Config:
        case_sensitive = True
        env_prefix = "VAT_"
