"""FieldSync Server Configuration."""

import secrets
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    server_name: str = "FieldSync Server"
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: str = "INFO"

    # Paths
    data_dir: Path = Path.home() / "fieldsync" / "data"

    # Database (empty -> sqlite file inside data_dir)
    database_url: str = ""

    # JWT
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours
    refresh_token_expire_days: int = 30

    # Device approval
    auth_code_length: int = 6
    auth_code_expire_hours: int = 24
    max_devices_per_user: int = 3
    approval_required_roles: list[str] = ["FIELD"]
    field_roles: list[str] = ["FIELD"]
    admin_roles: list[str] = ["ADMIN", "SUPER_ADMIN"]

    # App versions
    api_version: str = "4.0.0"
    min_supported_version: str = "3.0.0"
    force_update_version: str = "2.0.0"
    ios_download_url: str = "https://apps.apple.com/app/caseflow"
    android_download_url: str = "https://play.google.com/store/apps/details?id=com.caseflow"

    # Offline sync
    sync_batch_size: int = 50
    sync_max_limit: int = 500
    sync_max_upload_items: int = 1000
    sync_default_lookback_days: int = 30

    # Verification
    required_photos: int = 5

    # Limits and feature flags reported to the app
    max_file_size: int = 10 * 1024 * 1024
    max_files_per_case: int = 10
    location_accuracy_threshold: int = 10
    enable_offline_mode: bool = True
    enable_background_sync: bool = True
    enable_biometric_auth: bool = False

    model_config = {"env_prefix": "FIELDSYNC_"}

    @property
    def db_url(self) -> str:
        return self.database_url or f"sqlite:///{self.data_dir / 'fieldsync.db'}"

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def ensure_secrets(self) -> None:
        """Generate secrets if not set, persist to file so they survive restarts."""
        secrets_file = self.data_dir / ".secrets"
        saved = {}
        if secrets_file.exists():
            for line in secrets_file.read_text().strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    saved[k.strip()] = v.strip()

        if not self.jwt_secret:
            self.jwt_secret = saved.get("jwt_secret", "") or secrets.token_urlsafe(32)

        # Persist for next restart
        secrets_file.write_text(f"jwt_secret={self.jwt_secret}\n")

    def is_field_role(self, role: str) -> bool:
        return role in self.field_roles

    def is_admin_role(self, role: str) -> bool:
        return role in self.admin_roles

    def requires_device_approval(self, role: str) -> bool:
        return role in self.approval_required_roles


settings = Settings()
settings.ensure_dirs()
settings.ensure_secrets()
