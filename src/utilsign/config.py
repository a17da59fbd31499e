"""Service configuration.

Values come from keyword arguments, then ``UTILSIGN_*`` environment
variables, then the defaults below::

    UTILSIGN_DATA_DIR=/var/lib/utilsign
    UTILSIGN_APP_URL=https://sign.example.com
    UTILSIGN_SMTP_HOST=smtp.example.com
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .store import DEFAULT_UTILSIGN_DIR


class ServiceConfig(BaseSettings):
    """Settings shared by the API, the CLI and the signing engine.

    Attributes:
        data_dir: Root of the record store and object storage.
        max_upload_bytes: Largest PDF accepted on upload.
        app_url: Public base URL used in signing links.
        lock_timeout_seconds: How long a completion waits for another
            completion of the same document before giving up.
        mail_from: Sender address for notifications.
        smtp_host: SMTP relay. Unset means notifications are only logged.
        smtp_port: SMTP port.
        smtp_user: SMTP login.
        smtp_password: SMTP password.
        smtp_starttls: Whether to upgrade the connection with STARTTLS.
    """

    data_dir: Path = DEFAULT_UTILSIGN_DIR
    max_upload_bytes: int = Field(10 * 1024 * 1024, gt=0)
    app_url: str = "http://localhost:8400"
    lock_timeout_seconds: float = 30.0

    # Mail
    mail_from: str = "UtilSign <no-reply@localhost>"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_starttls: bool = True

    model_config = SettingsConfigDict(env_prefix="UTILSIGN_")
