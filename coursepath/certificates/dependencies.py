"""FastAPI dependencies for certificates."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import CertificateIssuer


async def get_certificate_issuer(request: Request) -> CertificateIssuer:
    """Get certificate issuer from app state."""
    app_state = request.app.state
    if not getattr(app_state, "certificate_issuer", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Certificate service not available",
        )
    return app_state.certificate_issuer


# Type alias for dependency injection
CertificateIssuerDep = Annotated[CertificateIssuer, Depends(get_certificate_issuer)]
