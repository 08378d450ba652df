"""Configuration for collab sessions and the reference authority server.

Session options are validated through `CollabConfig`. Server options are read
from the environment (prefix ``COLLAB_SYNC_``) through `ServerSettings`; callers
use ``get_settings()`` for a cached instance. Tests construct
``ServerSettings(...)`` directly.
"""

from __future__ import annotations

import random
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_CLIENT_ID = 0xFFFFFFFF


def random_client_id() -> int:
    return random.randint(1, MAX_CLIENT_ID)


class CollabConfig(BaseModel):
    """Options for starting a collab session."""

    version: int = Field(default=0, ge=0)
    client_id: Optional[int] = Field(default=None, gt=0)

    def resolve_client_id(self) -> int:
        return self.client_id if self.client_id is not None else random_client_id()


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="COLLAB_SYNC_", extra="ignore")

    # Reconnecting clients further behind than this get a full resync instead of a replay.
    replay_limit: int = Field(default=500, ge=0)
    send_queue_size: int = Field(default=256, gt=0)
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> ServerSettings:
    return ServerSettings()
