"""
INI-backed tenant store.

Reads and writes the tenant configuration file:

    [portal]
    default_domain = example.com

    [tenant_1]
    name = Main mail
    base_url = https://mail.example.com
    domains = example.com, example.org
    secret = <preauth key>
    verify_path = /service/soap
    token_path = /service/preauth
    ca_file = certs/internal-ca.pem
    insecure_tls = false

Reads parse the file fresh on every call. Writes (the admin config mutator)
go through a temporary file and os.replace(), so concurrent readers see
either the old or the new file, never a partial one.
"""

import configparser
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..exceptions import (
    ConfigSourceError,
    TenantNotFoundError,
    TenantValidationError,
)
from ..models import Tenant, TenantInput, TenantSnapshot, split_domains

logger = logging.getLogger(__name__)

PORTAL_SECTIONS = ("portal", "DEFAULT")
TRUE_VALUES = {"1", "true", "yes", "on"}


# =============================================================================
# Payload -> Tenant
# =============================================================================

def _describe_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"]) or "tenant"
        messages.append(f"{field}: {error['msg']}")
    return "; ".join(messages)


def build_tenant(key: str, payload: TenantInput, previous_secret: str = "") -> Tenant:
    """
    Turn an admin payload into a validated Tenant.

    An empty payload secret keeps ``previous_secret``; a non-empty one
    replaces it.

    Raises:
        TenantValidationError: If the resulting tenant is invalid
    """
    secret = payload.secret.strip() or previous_secret
    try:
        return Tenant(
            key=key,
            name=payload.name.strip(),
            base_url=payload.base_url,
            domains=payload.domains,
            secret=secret,
            verify_path=payload.verify_path,
            token_path=payload.token_path,
            ca_file=payload.ca_file,
            insecure_tls=payload.insecure_tls,
        )
    except ValidationError as exc:
        raise TenantValidationError(_describe_validation_error(exc)) from exc


def tenant_to_section(tenant: Tenant) -> Dict[str, str]:
    return {
        "name": tenant.name,
        "base_url": tenant.base_url,
        "domains": ",".join(tenant.domains),
        "secret": tenant.secret.get_secret_value(),
        "verify_path": tenant.verify_path,
        "token_path": tenant.token_path,
        "ca_file": tenant.ca_file or "",
        "insecure_tls": "true" if tenant.insecure_tls else "false",
    }


def tenant_from_section(key: str, section: configparser.SectionProxy) -> Tenant:
    """
    Build a Tenant from one INI section.

    Raises:
        ValidationError: If the section is incomplete or invalid
    """
    data = {
        "key": key,
        "name": section.get("name", ""),
        "base_url": section.get("base_url", "") or section.get("server", ""),
        "domains": split_domains(section.get("domains", "")),
        "secret": section.get("secret", "") or section.get("preauthkey", ""),
        "ca_file": section.get("ca_file", ""),
        "insecure_tls": section.get("insecure_tls", "false").strip().lower() in TRUE_VALUES,
    }
    verify_path = section.get("verify_path", "") or section.get("soap_path", "")
    token_path = section.get("token_path", "") or section.get("preauth_path", "")
    if verify_path.strip():
        data["verify_path"] = verify_path
    if token_path.strip():
        data["token_path"] = token_path
    return Tenant(**data)


# =============================================================================
# Store
# =============================================================================

class IniTenantStore:
    """
    Tenant source and admin config mutator over a single INI file.

    Args:
        path: INI file location
        key_prefix: Tenant keys must match '<key_prefix>_<integer>'
    """

    def __init__(self, path: os.PathLike, key_prefix: str = "tenant"):
        self.path = Path(path)
        self.key_prefix = key_prefix
        self._write_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def _new_parser(self) -> configparser.ConfigParser:
        # A default_section nobody uses keeps [DEFAULT] from leaking its
        # options into every tenant section.
        return configparser.ConfigParser(
            interpolation=None,
            default_section="__portal_defaults__",
        )

    def _read(self, missing_ok: bool = False) -> configparser.ConfigParser:
        parser = self._new_parser()
        if not self.path.is_file():
            if missing_ok:
                return parser
            raise ConfigSourceError(f"Tenant config file not found: {self.path}")
        try:
            with open(self.path, encoding="utf-8") as f:
                parser.read_file(f)
        except (configparser.Error, OSError, UnicodeDecodeError) as e:
            raise ConfigSourceError(f"Cannot read tenant config: {e}") from e
        return parser

    def is_tenant_key(self, key: str) -> bool:
        prefix, sep, number = key.rpartition("_")
        return bool(sep) and prefix == self.key_prefix and number.isdigit()

    def load(self) -> TenantSnapshot:
        """
        Parse the INI file into a fresh snapshot.

        Tenant sections that are incomplete (no base URL, secret or domains)
        or invalid are skipped with a warning, so one bad entry does not take
        every tenant down.
        """
        parser = self._read()

        default_domain = ""
        for name in PORTAL_SECTIONS:
            if parser.has_section(name):
                default_domain = parser[name].get("default_domain", "").strip().lower()
                break

        tenants: List[Tenant] = []
        for key in parser.sections():
            if not self.is_tenant_key(key):
                continue
            try:
                tenants.append(tenant_from_section(key, parser[key]))
            except ValidationError as e:
                logger.warning(
                    f"Skipping tenant section {key}: {_describe_validation_error(e)}",
                    extra={"tenant_key": key},
                )

        return TenantSnapshot(tenants=tuple(tenants), default_domain=default_domain)

    def list_tenants(self) -> List[Tenant]:
        return list(self.load().tenants)

    def get_tenant(self, key: str) -> Tenant:
        tenant = self.load().get(key)
        if tenant is None:
            raise TenantNotFoundError(key)
        return tenant

    # -------------------------------------------------------------------------
    # Writing (admin config mutator)
    # -------------------------------------------------------------------------

    def _write(self, parser: configparser.ConfigParser) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                parser.write(f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConfigSourceError(f"Cannot write tenant config: {e}") from e

    def _validate_key(self, key: Optional[str]) -> str:
        key = (key or "").strip()
        if not self.is_tenant_key(key):
            raise TenantValidationError(
                f"Tenant key must look like {self.key_prefix}_<number> (e.g. {self.key_prefix}_1)"
            )
        return key

    def create(self, payload: TenantInput) -> Tenant:
        """
        Add a new tenant.

        Raises:
            TenantValidationError: Invalid payload, duplicate key or missing secret
        """
        key = self._validate_key(payload.key)
        if not payload.secret.strip():
            raise TenantValidationError("secret: required when creating a tenant")
        tenant = build_tenant(key, payload)

        with self._write_lock:
            parser = self._read(missing_ok=True)
            if parser.has_section(key):
                raise TenantValidationError(f"Tenant key already exists: {key}")
            parser.add_section(key)
            parser[key].update(tenant_to_section(tenant))
            self._write(parser)

        logger.info("Tenant created", extra={"tenant_key": key})
        return tenant

    def update(self, key: str, payload: TenantInput) -> Tenant:
        """
        Replace a tenant's settings. A blank secret keeps the stored one;
        options this store does not know about are preserved.

        Raises:
            TenantNotFoundError: If the key does not exist
            TenantValidationError: If the merged tenant is invalid
        """
        key = self._validate_key(key)

        with self._write_lock:
            parser = self._read()
            if not parser.has_section(key):
                raise TenantNotFoundError(key)
            section = parser[key]
            previous_secret = section.get("secret", "") or section.get("preauthkey", "")
            tenant = build_tenant(key, payload, previous_secret.strip())
            section.pop("preauthkey", None)
            section.update(tenant_to_section(tenant))
            self._write(parser)

        logger.info(
            "Tenant updated",
            extra={"tenant_key": key, "secret_rotated": bool(payload.secret.strip())},
        )
        return tenant

    def delete(self, key: str) -> None:
        """
        Remove a tenant section. Only tenant keys are accepted, so [portal]
        and other non-tenant sections cannot be deleted here.

        Raises:
            TenantValidationError: If the key is not a tenant key
            TenantNotFoundError: If the key does not exist
        """
        key = self._validate_key(key)

        with self._write_lock:
            parser = self._read()
            if not parser.remove_section(key):
                raise TenantNotFoundError(key)
            self._write(parser)

        logger.info("Tenant deleted", extra={"tenant_key": key})
