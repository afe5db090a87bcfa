"""Root conftest for the acmelib test suite."""

from __future__ import annotations

import dataclasses
import datetime
import itertools
import logging
import secrets
import sys
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes, serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import ec  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402

from acmelib.ca.base import CAClient  # noqa: E402
from acmelib.core.errors import ACCOUNT_DOES_NOT_EXIST, AccountExistsError, AcmeProblem, RPCFailed  # noqa: E402
from acmelib.core.jws import compute_thumbprint, public_jwk  # noqa: E402
from acmelib.core.types import (  # noqa: E402
    AccountStatus,
    AuthorizationStatus,
    ChallengeStatus,
    IdentifierType,
    OrderStatus,
)
from acmelib.models import (  # noqa: E402
    Authorization,
    Challenge,
    Identifier,
    Order,
    Registration,
)

# ---------------------------------------------------------------------------
# Minimal config data shared by multiple test modules
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Return a dict containing the minimum required config fields."""
    return {
        "ca": {"directory_url": "https://ca.example.test/directory"},
        "account": {"email": "ops@example.com"},
        "order": {
            "poll_base_seconds": 0.001,
            "poll_max_seconds": 0.002,
            "poll_timeout_seconds": 2,
        },
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture()
def settings(minimal_config_data: dict):
    """Typed settings tree with fast polling."""
    from acmelib.config.settings import build_settings

    return build_settings(minimal_config_data)


# ---------------------------------------------------------------------------
# Config instance cleanup -- autouse so every test gets a fresh slate
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the AcmelibConfig instance before and after every test."""
    from acmelib.config.acmelib_config import AcmelibConfig

    AcmelibConfig.reset()
    yield
    AcmelibConfig.reset()


@pytest.fixture(autouse=True)
def _restore_acmelib_logger():
    """Undo ``configure_logging`` so caplog keeps seeing acmelib records."""
    logger = logging.getLogger("acmelib")
    saved = (logger.level, list(logger.handlers), logger.propagate)
    yield
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]
    logger.propagate = saved[2]


# ---------------------------------------------------------------------------
# In-memory CA
# ---------------------------------------------------------------------------

_BASE = "https://ca.example.test"


def _issuer() -> tuple[ec.EllipticCurvePrivateKey, x509.Certificate]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Fake Test CA")])
    now = datetime.datetime.now(datetime.UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return key, cert


class FakeCA(CAClient):
    """Scriptable in-memory CA.

    Parameters
    ----------
    offered:
        Challenge types offered in every authorization.
    poll_statuses:
        Per-domain list of statuses (or exceptions to raise) returned by
        successive ``poll_authorization`` calls; the last entry repeats.
        Domains not listed become ``valid`` on the first poll.
    prevalid:
        Domains whose authorization is already ``valid``.
    tos:
        Terms-of-service URL published in the directory.

    """

    def __init__(
        self,
        *,
        offered=("http-01", "dns-01"),
        poll_statuses=None,
        prevalid=(),
        tos="https://ca.example.test/tos",
    ):
        self.offered = tuple(offered)
        self.poll_statuses = dict(poll_statuses or {})
        self.prevalid = set(prevalid)
        self.tos = tos
        self.calls: list[tuple[str, tuple]] = []
        self.registrations: dict[str, Registration] = {}
        self.authorizations: dict[str, Authorization] = {}
        self.poll_counts: dict[str, int] = {}
        self.accepted: list[str] = []
        self.revoked: list[tuple[bytes, int, str | None]] = []
        self._ids = itertools.count(1)
        self._ca_key, self.ca_cert = _issuer()

    # -- helpers ------------------------------------------------------------

    def rpc_count(self) -> int:
        return len(self.calls)

    def _record(self, name, *args):
        self.calls.append((name, args))

    @staticmethod
    def _thumb(key) -> str:
        return compute_thumbprint(public_jwk(key))

    def _authz_for(self, domain: str) -> Authorization:
        wildcard = domain.startswith("*.")
        status = AuthorizationStatus.VALID if domain in self.prevalid else AuthorizationStatus.PENDING
        url = f"{_BASE}/authz/{next(self._ids)}"
        challenges = tuple(
            Challenge(
                url=f"{url}/chall/{ctype}",
                type=ctype,
                token=secrets.token_urlsafe(16),
                status=ChallengeStatus.PENDING,
            )
            for ctype in self.offered
        )
        authz = Authorization(
            url=url,
            identifier=Identifier(IdentifierType.DNS, domain.removeprefix("*.")),
            status=status,
            challenges=challenges,
            wildcard=wildcard,
        )
        self.authorizations[url] = authz
        return authz

    # -- CAClient -----------------------------------------------------------

    def terms_of_service(self):
        self._record("terms_of_service")
        return self.tos

    def register(self, key, contact, *, agree_tos):
        self._record("register", tuple(contact), agree_tos)
        thumb = self._thumb(key)
        if thumb in self.registrations:
            raise AccountExistsError(self.registrations[thumb].uri)
        reg = Registration(
            uri=f"{_BASE}/acct/{next(self._ids)}",
            status=AccountStatus.VALID,
            contact=tuple(contact),
            orders=None,
            terms_of_service_agreed=agree_tos,
        )
        self.registrations[thumb] = reg
        return reg

    def get_registration(self, key):
        self._record("get_registration")
        reg = self.registrations.get(self._thumb(key))
        if reg is None:
            problem = AcmeProblem(ACCOUNT_DOES_NOT_EXIST, "no such account", 400)
            raise RPCFailed("no such account", cause=problem)
        return reg

    def update_contact(self, key, kid, contact):
        self._record("update_contact", kid, tuple(contact))
        thumb = self._thumb(key)
        reg = self.registrations[thumb]
        if reg.uri != kid:
            msg = f"key does not own {kid}"
            raise RPCFailed(msg)
        self.registrations[thumb] = dataclasses.replace(reg, contact=tuple(contact))
        return self.registrations[thumb]

    def new_order(self, account, domains):
        self._record("new_order", tuple(domains))
        authzs = [self._authz_for(d) for d in domains]
        order_url = f"{_BASE}/order/{next(self._ids)}"
        return Order(
            url=order_url,
            status=OrderStatus.PENDING,
            identifiers=tuple(Identifier(IdentifierType.DNS, d) for d in domains),
            finalize_url=f"{order_url}/finalize",
            authorizations=tuple(a.url for a in authzs),
        )

    def get_authorization(self, account, url):
        self._record("get_authorization", url)
        return self.authorizations[url]

    def poll_authorization(self, account, url):
        self._record("poll_authorization", url)
        authz = self.authorizations[url]
        count = self.poll_counts.get(url, 0)
        self.poll_counts[url] = count + 1

        script = self.poll_statuses.get(authz.domain, ["valid"])
        step = script[min(count, len(script) - 1)]
        if isinstance(step, BaseException):
            raise step

        status = AuthorizationStatus(step)
        challenges = authz.challenges
        if status == AuthorizationStatus.INVALID:
            challenges = tuple(
                Challenge(
                    url=c.url,
                    type=c.type,
                    token=c.token,
                    status=ChallengeStatus.INVALID,
                    error={"type": "urn:ietf:params:acme:error:incorrectResponse", "detail": "proof mismatch"},
                )
                for c in challenges
            )
        return Authorization(
            url=authz.url,
            identifier=authz.identifier,
            status=status,
            challenges=challenges,
            wildcard=authz.wildcard,
        )

    def accept_challenge(self, account, url):
        self._record("accept_challenge", url)
        self.accepted.append(url)
        for authz in self.authorizations.values():
            for c in authz.challenges:
                if c.url == url:
                    return Challenge(url=url, type=c.type, token=c.token, status=ChallengeStatus.PROCESSING)
        msg = f"unknown challenge {url}"
        raise RPCFailed(msg)

    def finalize(self, account, order, csr_der, *, bundle=True, cancel=None):
        self._record("finalize", order.url)
        csr = x509.load_der_x509_csr(csr_der)
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        now = datetime.datetime.now(datetime.UTC)
        leaf = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(self.ca_cert.subject)
            .public_key(csr.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=7))
            .add_extension(san, critical=False)
            .sign(self._ca_key, hashes.SHA256())
        )
        chain = [
            leaf.public_bytes(serialization.Encoding.DER),
            self.ca_cert.public_bytes(serialization.Encoding.DER),
        ]
        return (chain if bundle else chain[:1]), f"{order.url}/cert"

    def revoke(self, key, cert_der, reason, *, kid=None):
        self._record("revoke", int(reason))
        self.revoked.append((cert_der, int(reason), kid))


@pytest.fixture()
def fake_ca_factory():
    """Return the :class:`FakeCA` class for tests that script it."""
    return FakeCA


@pytest.fixture()
def fake_ca() -> FakeCA:
    return FakeCA()
