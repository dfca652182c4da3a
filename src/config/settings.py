"""Global node settings"""

from pydantic import PositiveInt
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Centralized configuration.
    Reads configs from env variables.
    """

    app_name: str = "Flood Relay Node"
    server_port: int = 8000

    node_id: str | None = None

    # Transport files, usually named pipes
    input_path: str | None = None
    output_path: str | None = None

    # None keeps every seen message id for the process lifetime
    dedup_capacity: PositiveInt | None = None

    departure_text: str = "left the chat"

    log_level: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
