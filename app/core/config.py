from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from pathlib import Path
import os


load_dotenv()


class Settings(BaseSettings):
    app_name: str = "AgriQCert API"
    debug: bool = False
    log_file: str = "logs/application.log"
    log_rotation: str = "500 MB"
    log_level: str = ""
    database_url: str = "sqlite:///./agriqcert.db"
    host: str = "127.0.0.1"
    port: int = 8000
    secret_key: str = ""
    access_token_expire_minutes: int = 15
    allowed_hosts: str = ""
    static_dir: Path = Path(__file__).parent.parent.parent / "static"

    # Public endpoints embedded in issued credentials and QR codes
    public_url: str = "http://localhost:8000"
    verify_portal_url: str = "http://localhost:5173/verify"

    # Issuer DID of the certifying authority. Empty means derive per organization.
    issuer_did: str = ""

    # External trust authority (signing + verification)
    certify_base_url: str = ""
    certify_api_key: str = ""

    # External wallet sharing authority (best effort)
    wallet_base_url: str = ""
    wallet_api_key: str = ""

    external_timeout_seconds: float = 5.0

    # When enabled, QA users only see batches assigned to them
    enforce_qa_assignment: bool = False

    default_admin_email: str = "admin@agriqcert.test"


settings = Settings()

if not settings.secret_key:
    raise RuntimeError("Secret key not configured.")


os.makedirs(settings.static_dir, exist_ok=True)
