from pydantic_settings import BaseSettings
from pathlib import Path

class Settings(BaseSettings):
    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None
    enable_color: bool = True

    # World state
    strict_invariants: bool = True     # Raise on invariant violations instead of clamping

    # Story memory
    context_budget: int = 30
    importance_floor: float = 0.05
    volatile_decay_rate: float = 0.02
    stable_decay_rate: float = 0.01
    consequence_decay_rate: float = 0.01
    fuzzy_match_cutoff: float = 0.8

    # Relevance classifier (LLM)
    ollama_host: str = "http://localhost:11434"
    relevance_model: str = "gemma2:2b"
    relevance_timeout: float = 30.0

    class Config:
        env_file = ".env"
        env_prefix = "CHRONICLE_"

settings = Settings()
