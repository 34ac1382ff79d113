import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Config:
    database_url: str = "sqlite:///./data.db"
    storage_dir: str = "./storage"
    public_base_url: str = "http://localhost:8000"
    signing_secret: str = "change_me_super_secret"
    signed_url_ttl_days: int = 3650
    admin_api_key: str | None = None

    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None

    paypal_client_id: str | None = None
    paypal_client_secret: str | None = None
    paypal_environment: str = "sandbox"
    paypal_webhook_id: str | None = None

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_from: str = "noreply@example.org"
    smtp_tls: bool = True

    issuer_name: str = "FASE"
    issuer_taxid: str = "BE0000000000"
    issuer_address: str = "Rue du Trône 100, 1050 Brussels"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            storage_dir=os.getenv("STORAGE_DIR", cls.storage_dir),
            public_base_url=os.getenv("PUBLIC_BASE_URL", cls.public_base_url).rstrip("/"),
            signing_secret=os.getenv("SIGNING_SECRET", cls.signing_secret),
            signed_url_ttl_days=int(os.getenv("SIGNED_URL_TTL_DAYS", str(cls.signed_url_ttl_days))),
            admin_api_key=os.getenv("FIRESTORE_ADMIN_API_KEY") or None,
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY") or None,
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET") or None,
            paypal_client_id=os.getenv("PAYPAL_CLIENT_ID") or None,
            paypal_client_secret=os.getenv("PAYPAL_CLIENT_SECRET") or None,
            paypal_environment=os.getenv("PAYPAL_ENVIRONMENT", cls.paypal_environment).lower(),
            paypal_webhook_id=os.getenv("PAYPAL_WEBHOOK_ID") or None,
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            smtp_from=os.getenv("SMTP_FROM", cls.smtp_from),
            smtp_tls=os.getenv("SMTP_TLS", "true").lower() == "true",
            issuer_name=os.getenv("INVOICE_ISSUER_NAME", cls.issuer_name),
            issuer_taxid=os.getenv("INVOICE_ISSUER_TAXID", cls.issuer_taxid),
            issuer_address=os.getenv("INVOICE_ISSUER_ADDRESS", cls.issuer_address),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )
