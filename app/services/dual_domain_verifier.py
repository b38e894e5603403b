"""
Apex + www DNS verification.

A custom domain needs two records at the registrar: an A record on the apex
pointing at the provider's anycast IP, and a CNAME on www pointing at the
service host. Both are checked independently so operators can tell the
business which one is still missing.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import dns.exception
import dns.resolver

from app.config import settings
from app.models.business import strip_www

logger = logging.getLogger("bizdomains.dns")


def _normalize(name: str) -> str:
    return (name or "").strip().lower().rstrip(".")


class DualDomainVerifier:
    def __init__(
        self,
        domain_name: str,
        resolver: Optional[dns.resolver.Resolver] = None,
        expected_target: Optional[str] = None,
        apex_ip: Optional[str] = None,
    ):
        self.apex_domain = strip_www(domain_name)
        self.www_domain = f"www.{self.apex_domain}"
        self.resolver = resolver or dns.resolver.Resolver()
        self.expected_target = _normalize(expected_target or settings.RENDER_CNAME_TARGET)
        self.apex_ip = apex_ip or settings.RENDER_APEX_IP

    def verify_both_domains(self) -> Dict[str, Any]:
        logger.info("[DualDomainVerifier] Verifying %s and %s", self.apex_domain, self.www_domain)

        apex = self._verify_apex()
        www = self._verify_www()
        return {
            "apex_domain": self.apex_domain,
            "www_domain": self.www_domain,
            "apex_result": apex,
            "www_result": www,
            "both_verified": apex["verified"] and www["verified"],
            "checked_at": datetime.now(timezone.utc),
        }

    def status_summary(self, verification: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Operator-facing summary; pass an earlier `verify_both_domains` result to skip the lookups."""
        verification = verification or self.verify_both_domains()
        apex_ok = verification["apex_result"]["verified"]
        www_ok = verification["www_result"]["verified"]

        if apex_ok and www_ok:
            overall, message = "fully_configured", "Both apex and www domains are correctly configured"
        elif apex_ok or www_ok:
            overall, message = "partially_configured", "One of the apex or www records is still missing"
        else:
            overall, message = "not_configured", "Neither the apex nor the www record is configured yet"

        return {
            "overall_status": overall,
            "message": message,
            "apex_status": self._record_status(verification["apex_result"]),
            "www_status": self._record_status(verification["www_result"]),
            "next_steps": self._next_steps(apex_ok, www_ok),
        }

    # ── lookups ──

    def _verify_apex(self) -> Dict[str, Any]:
        result = self._empty_result(self.apex_domain, "A", self.apex_ip)
        try:
            ips = [rdata.to_text() for rdata in self.resolver.resolve(self.apex_domain, "A")]
        except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN):
            result["error"] = "No A record found"
            return result
        except dns.exception.DNSException as e:
            logger.warning("[DualDomainVerifier] A lookup failed for %s: %s", self.apex_domain, e)
            result["error"] = f"DNS lookup failed: {str(e) or e.__class__.__name__}"
            return result

        result["target"] = ips[0] if ips else None
        result["verified"] = self.apex_ip in ips
        if not result["verified"]:
            result["error"] = f"A record points to {', '.join(ips)}"
        return result

    def _verify_www(self) -> Dict[str, Any]:
        result = self._empty_result(self.www_domain, "CNAME", self.expected_target)
        try:
            answers = self.resolver.resolve(self.www_domain, "CNAME")
        except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN):
            result["error"] = "No CNAME record found"
            return result
        except dns.exception.DNSException as e:
            logger.warning("[DualDomainVerifier] CNAME lookup failed for %s: %s", self.www_domain, e)
            result["error"] = f"DNS lookup failed: {str(e) or e.__class__.__name__}"
            return result

        targets = [_normalize(rdata.target.to_text()) for rdata in answers]
        result["target"] = targets[0] if targets else None
        result["verified"] = self.expected_target in targets
        if not result["verified"]:
            result["error"] = f"CNAME points to {result['target']}"
        return result

    @staticmethod
    def _empty_result(domain: str, record_type: str, expected: str) -> Dict[str, Any]:
        return {
            "domain": domain,
            "record_type": record_type,
            "verified": False,
            "target": None,
            "expected_target": expected,
            "error": None,
        }

    @staticmethod
    def _record_status(result: Dict[str, Any]) -> str:
        if result["verified"]:
            return "verified"
        return result["error"] or "not verified"

    def _next_steps(self, apex_ok: bool, www_ok: bool) -> List[str]:
        steps = []
        if not apex_ok:
            steps.append(f"Add an A record for {self.apex_domain} pointing to {self.apex_ip}")
        if not www_ok:
            steps.append(f"Add a CNAME record for {self.www_domain} pointing to {self.expected_target}")
        if steps:
            steps.append("DNS changes can take up to 48 hours to propagate")
        return steps
