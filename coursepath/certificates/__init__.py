"""Certificate issuance and verification."""

from .models import CERTIFICATES_TABLES_CQL, Certificate
from .repository import CertificateRepository
from .service import CertificateIssuer, generate_certificate_number


__all__ = [
    "CERTIFICATES_TABLES_CQL",
    "Certificate",
    "CertificateIssuer",
    "CertificateRepository",
    "generate_certificate_number",
]
