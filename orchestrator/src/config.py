from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    database_url: str = "sqlite:///./stageline.db"
    record_runs: bool = True

    # Workspace settings
    workspace_root: str = ".stageline/workspaces"
    git_timeout: int = 300  # 5 minutes per git call

    # Execution settings
    step_timeout: Optional[float] = None  # Unbounded unless set
    poll_interval: float = 60.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "STAGELINE_"
        extra = "ignore"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
