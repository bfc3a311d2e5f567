from dataclasses import dataclass

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Proposal Assembly API"
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True
    log_level: str = "INFO"
    request_id_header: str = "X-Request-ID"

    # Sections whose text is this short are treated as empty placeholders.
    min_content_chars: int = 20
    trivial_value_chars: int = 5
    dedup_probe_chars: int = 20
    material_growth_ratio: float = 1.25
    substring_match_min_chars: int = 4
    placeholder_title_chars: int = 10
    label_colon_max_index: int = 70
    squashed_label_max_chars: int = 30

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@dataclass(frozen=True)
class EngineOptions:
    min_content_chars: int = 20
    trivial_value_chars: int = 5
    dedup_probe_chars: int = 20
    material_growth_ratio: float = 1.25
    substring_match_min_chars: int = 4
    placeholder_title_chars: int = 10
    label_colon_max_index: int = 70
    squashed_label_max_chars: int = 30

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "EngineOptions":
        current = source or settings
        return cls(
            min_content_chars=current.min_content_chars,
            trivial_value_chars=current.trivial_value_chars,
            dedup_probe_chars=current.dedup_probe_chars,
            material_growth_ratio=current.material_growth_ratio,
            substring_match_min_chars=current.substring_match_min_chars,
            placeholder_title_chars=current.placeholder_title_chars,
            label_colon_max_index=current.label_colon_max_index,
            squashed_label_max_chars=current.squashed_label_max_chars,
        )


settings = Settings()
