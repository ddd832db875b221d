from dataclasses import dataclass
import os
from typing import Mapping, Optional

from dotenv import load_dotenv


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Config:
    bot_token: str
    log_level: str = "INFO"
    # Drop updates that piled up while the bot was offline
    skip_updates: bool = True


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build the config from `environ`, or from the process env plus `.env`."""
    if environ is None:
        load_dotenv()
        environ = os.environ

    token = environ.get("BOT_TOKEN", "").strip()
    if not token:
        raise ConfigError("BOT_TOKEN environment variable not set")

    return Config(
        bot_token=token,
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        skip_updates=environ.get("SKIP_UPDATES", "1").lower() not in ("0", "false", "no"),
    )
