from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Application configuration settings.
    """
    model_config = SettingsConfigDict(env_prefix="AGENT_CHAIN_OPTIMIZER_", env_file=".env", extra="ignore")

    # Service Info
    service_name: str = "agent-chain-optimizer"
    environment: str = "local"
    log_level: str = "WARNING"

    # Analysis
    bottleneck_threshold_percent: float = 20.0
    bottleneck_top_k: int = 1

    # Planning
    batch_discount_factor: float = 0.10
    auto_optimize: bool = False

    # Tracing: logging | console | json | none
    trace_sink: str = "logging"

    # Simulation defaults (CLI)
    default_input_tokens: int = 100
    default_output_tokens: int = 50

settings = Settings()
