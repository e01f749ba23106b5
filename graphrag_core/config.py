from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    """
    Centralized client settings. Pydantic's BaseSettings will automatically
    load these from environment variables or a .env file.
    """
    # --- Backend Connection ---
    GRAPHRAG_API_BASE_URL: str = Field("http://localhost:8080", description="Base URL of the GraphRAG backend.")
    REQUEST_TIMEOUT_SECONDS: float = Field(60.0, description="Timeout applied by the transport to every request.")

    # --- Query Defaults ---
    DEFAULT_RETRIEVAL_MODE: str = Field("hybrid", description="Retrieval mode used when a query does not name one.")

    # --- Graph Explorer ---
    RELATED_MAX_HOPS: int = Field(2, description="Maximum hops requested when exploring related entities.")
    RELATED_MAX_RESULTS: int = Field(20, description="Maximum related-entity paths requested per search.")

    # --- Logging ---
    LOG_LEVEL: str = Field("INFO", description="Level for the structured JSON loggers.")

    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

settings = Settings()
