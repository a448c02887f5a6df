"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "korea-aml-policy"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    host: str = "0.0.0.0"
    port: int = 8000

    kafka_bootstrap_servers: str = "localhost:9092"

    # Audit trail: "log" writes through structlog, "kafka" publishes to audit_topic
    audit_sink: str = "log"
    audit_topic: str = "korea.audit.events"

    # Blockchain anchoring service; empty uses a local content hash
    anchoring_url: str = ""
    anchoring_timeout_seconds: float = 5.0

    # Comma-separated identity ids seeded into the sanctions list
    sanctions_list: str = ""

    # This platform's identity as originator VASP for travel-rule records
    vasp_name: str = "Local Currency Platform"
    vasp_lei: str | None = None
    vasp_country: str = "KR"

    policy_timezone: str = "Asia/Seoul"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @property
    def sanctioned_ids(self) -> list[str]:
        return [s.strip() for s in self.sanctions_list.split(",") if s.strip()]


settings = Settings()
