"""
Origin policy and hardening headers shared by the HTTP edge and the Socket.IO handshake.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from liga.core.config import Settings


@dataclass(frozen=True)
class OriginPolicy:
    """
    Textual allow-rule for cross-origin callers.

    A caller is allowed when it sends no Origin at all, when the origin starts
    with the local development origin, or when it ends with the deployment
    platform suffix. Matching is plain string comparison, not host parsing.
    """
    allowed_local_prefix: str
    allowed_deploy_suffix: str

    @classmethod
    def from_settings(cls, config: Settings) -> "OriginPolicy":
        return cls(
            allowed_local_prefix=config.CORS_LOCAL_ORIGIN_PREFIX,
            allowed_deploy_suffix=config.CORS_DEPLOY_ORIGIN_SUFFIX,
        )

    def allows(self, origin: Optional[str]) -> bool:
        if not origin:
            return True
        if self.allowed_local_prefix and origin.startswith(self.allowed_local_prefix):
            return True
        if self.allowed_deploy_suffix and origin.endswith(self.allowed_deploy_suffix):
            return True
        return False


# Baseline hardening set applied to every HTTP response.
SECURITY_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}
