"""Issued certificate bundle."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CertificateBundle:
    domains: tuple[str, ...]
    certificate: str
    chain: tuple[str, ...]
    fullchain: str
    private_key: str
    finalize_url: str
    certificate_url: str | None = None

    def __repr__(self) -> str:
        return (
            f"CertificateBundle(domains={self.domains!r}, "
            f"certificate_url={self.certificate_url!r})"
        )
