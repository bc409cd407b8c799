"""Configuration management for avatalk."""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings


class StoreConfig(BaseModel):
    """Remote session store configuration."""
    supabase_url: str = ""
    supabase_key: str = ""
    sessions_table: str = "sessions"
    messages_table: str = "messages"
    request_timeout_s: float = 10.0

    @property
    def is_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


class AvatarConfig(BaseModel):
    """Avatar transport configuration."""
    token_url: str = "http://localhost:3000/api/get-access-token"
    avatar_id: str = "00e7b435191b4dcc85936073262b9aa8"
    knowledge_id: str = "6a065e56b4a74f7a884d8323e10ceb90"
    language: str = "nl"
    quality: str = "high"
    transport: str = "mock"


class VoiceOptionsConfig(BaseModel):
    """Options passed to the transport when voice chat starts."""
    use_silence_prompt: bool = True
    silence_timeout_ms: int = 100
    silence_threshold_db: Optional[int] = -50
    is_input_audio_muted: bool = False


class SessionConfig(BaseModel):
    """Conversation session configuration."""
    timeout_s: float = 300.0  # 5 minutes of inactivity
    greeting_text: str = "Hoi"
    greeting_delay_s: float = 1.0
    voice_warmup_delay_s: float = 0.1
    toast_duration_s: float = 3.0
    voice_mode: VoiceOptionsConfig = VoiceOptionsConfig()
    voice_warmup: VoiceOptionsConfig = VoiceOptionsConfig(
        silence_timeout_ms=5000,
        silence_threshold_db=None,
        is_input_audio_muted=True,
    )


class Config(BaseSettings):
    """Main configuration."""
    store: StoreConfig = StoreConfig()
    avatar: AvatarConfig = AvatarConfig()
    session: SessionConfig = SessionConfig()

    @classmethod
    def load(cls, env_path: Optional[Path] = None) -> "Config":
        """Load configuration from environment variables."""
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        defaults = AvatarConfig()
        return cls(
            store=StoreConfig(
                supabase_url=os.getenv("SUPABASE_URL", ""),
                supabase_key=os.getenv("SUPABASE_ANON_KEY", ""),
            ),
            avatar=AvatarConfig(
                token_url=os.getenv("AVATAR_TOKEN_URL", defaults.token_url),
                avatar_id=os.getenv("AVATAR_ID", defaults.avatar_id),
                knowledge_id=os.getenv("KNOWLEDGE_BASE_ID", defaults.knowledge_id),
                language=os.getenv("AVATAR_LANGUAGE", defaults.language),
                quality=os.getenv("AVATAR_QUALITY", defaults.quality),
                transport=os.getenv("AVATAR_TRANSPORT", defaults.transport),
            ),
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config
