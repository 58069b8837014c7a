"""
Failover Controller Tests

Tests candidate ordering, first-success short circuit, error absorption and
the failure taxonomy of a login run.
"""

from unittest.mock import Mock
from urllib.parse import parse_qsl, urlsplit

import pytest

from preauth_portal.auth.failover import (
    MAX_IDENTIFIER_CHARS,
    MAX_PASSWORD_CHARS,
    FailoverController,
    FailoverState,
)
from preauth_portal.auth.preauth import compute_preauth
from preauth_portal.exceptions import (
    AuthFailedError,
    ConfigSourceError,
    DomainUnmappedError,
    FailureReason,
    InternalPortalError,
    InvalidEmailError,
    MissingCredentialsError,
    UnknownTenantOverrideError,
)
from preauth_portal.models import CandidateOutcome
from preauth_portal.tenants.source import StaticTenantSource
from preauth_portal.tests.conftest import FIXED_TIMESTAMP, FakeVerifier, make_tenant


def make_controller(tenants, verifier, fixed_clock, default_domain=""):
    source = StaticTenantSource(tenants, default_domain=default_domain)
    return FailoverController(
        tenant_source=source.load,
        verifier=verifier,
        clock=fixed_clock,
        diagnostic_max_chars=40,
    )


@pytest.fixture
def corp_tenants():
    return [
        make_tenant("tenant_1", "corp.com"),
        make_tenant("tenant_2", "corp.com"),
        make_tenant("tenant_3", "*"),
    ]


@pytest.mark.asyncio
async def test_first_exact_match_wins(corp_tenants, fixed_clock):
    verifier = FakeVerifier({"tenant_1": True, "tenant_2": True})
    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run("bob@corp.com", "pw")

    assert outcome.ok
    assert outcome.tenant_key == "tenant_1"
    assert verifier.called_keys == ["tenant_1"]
    assert outcome.state is FailoverState.SUCCESS


@pytest.mark.asyncio
async def test_falls_through_to_wildcard(corp_tenants, fixed_clock):
    verifier = FakeVerifier({"tenant_3": True})
    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run("bob@corp.com", "pw")

    assert outcome.ok
    assert outcome.tenant_key == "tenant_3"
    assert verifier.called_keys == ["tenant_1", "tenant_2", "tenant_3"]
    assert outcome.attempted_tenant_keys == ["tenant_1", "tenant_2", "tenant_3"]
    assert [a.outcome for a in outcome.attempts] == [
        CandidateOutcome.REJECTED,
        CandidateOutcome.REJECTED,
        CandidateOutcome.OK,
    ]
    assert outcome.transitions == [
        FailoverState.START,
        FailoverState.RESOLVE,
        FailoverState.VERIFY_CANDIDATE,
        FailoverState.NEXT_CANDIDATE,
        FailoverState.VERIFY_CANDIDATE,
        FailoverState.NEXT_CANDIDATE,
        FailoverState.VERIFY_CANDIDATE,
        FailoverState.SUCCESS,
    ]


@pytest.mark.asyncio
async def test_redirect_signed_with_winner_secret(fixed_clock):
    tenants = [
        make_tenant("tenant_1", "corp.com", secret="first-secret"),
        make_tenant("tenant_2", "corp.com", secret="second-secret", base_url="https://two.corp.com"),
    ]
    verifier = FakeVerifier({"tenant_2": True})
    outcome = await make_controller(tenants, verifier, fixed_clock).run("bob@corp.com", "pw")

    parts = urlsplit(outcome.redirect_url)
    params = dict(parse_qsl(parts.query))
    assert parts.netloc == "two.corp.com"
    assert params["account"] == "bob@corp.com"
    assert params["timestamp"] == FIXED_TIMESTAMP

    assert params["preauth"] == compute_preauth("bob@corp.com", FIXED_TIMESTAMP, "second-secret")


@pytest.mark.asyncio
async def test_all_rejected_is_auth_failed(corp_tenants, fixed_clock):
    verifier = FakeVerifier()
    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run("bob@corp.com", "pw")

    assert not outcome.ok
    assert isinstance(outcome.error, AuthFailedError)
    assert outcome.error.attempted_tenant_keys == ["tenant_1", "tenant_2", "tenant_3"]
    assert outcome.redirect_url is None
    assert outcome.state is FailoverState.EXHAUSTED


@pytest.mark.asyncio
async def test_remote_error_is_absorbed(corp_tenants, fixed_clock, remote_error):
    verifier = FakeVerifier({"tenant_1": remote_error, "tenant_2": True})
    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run("bob@corp.com", "pw")

    assert outcome.ok
    assert outcome.tenant_key == "tenant_2"
    assert outcome.attempts[0].outcome is CandidateOutcome.REMOTE_ERROR
    assert outcome.attempts[0].error
    assert len(outcome.attempts[0].error) <= 40


@pytest.mark.asyncio
async def test_all_remote_errors_report_auth_failed_with_last_error(fixed_clock, remote_error):
    tenants = [make_tenant("tenant_1", "corp.com"), make_tenant("tenant_2", "corp.com")]
    verifier = FakeVerifier({"tenant_1": remote_error, "tenant_2": RuntimeError("boom")})
    outcome = await make_controller(tenants, verifier, fixed_clock).run("bob@corp.com", "pw")

    assert isinstance(outcome.error, AuthFailedError)
    assert outcome.error.reason is FailureReason.AUTH_FAILED
    assert outcome.last_error == "boom"


@pytest.mark.asyncio
async def test_unmapped_domain_makes_no_calls(fixed_clock):
    verifier = FakeVerifier({"tenant_1": True})
    tenants = [make_tenant("tenant_1", "corp.com")]
    outcome = await make_controller(tenants, verifier, fixed_clock).run("bob@other.com", "pw")

    assert isinstance(outcome.error, DomainUnmappedError)
    assert verifier.calls == []
    assert outcome.attempted_tenant_keys == []
    assert outcome.domain == "other.com"
    assert outcome.state is FailoverState.FAILED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "identifier,password",
    [("", "pw"), ("bob@corp.com", ""), ("   ", "pw")],
)
async def test_missing_credentials(corp_tenants, fixed_clock, identifier, password):
    verifier = FakeVerifier({"tenant_1": True})
    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run(identifier, password)

    assert isinstance(outcome.error, MissingCredentialsError)
    assert verifier.calls == []


@pytest.mark.asyncio
async def test_bare_username_without_default_domain(corp_tenants, fixed_clock):
    outcome = await make_controller(corp_tenants, FakeVerifier(), fixed_clock).run("bob", "pw")
    assert isinstance(outcome.error, InvalidEmailError)


@pytest.mark.asyncio
async def test_bare_username_uses_default_domain(corp_tenants, fixed_clock):
    verifier = FakeVerifier({"tenant_1": True})
    controller = make_controller(corp_tenants, verifier, fixed_clock, default_domain="corp.com")
    outcome = await controller.run("bob", "pw")

    assert outcome.ok
    assert verifier.calls == [("tenant_1", "bob@corp.com", "pw")]


@pytest.mark.asyncio
async def test_override_tries_only_that_tenant(corp_tenants, fixed_clock):
    verifier = FakeVerifier()
    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run(
        "bob@corp.com", "pw", tenant_key_override="tenant_3"
    )

    assert isinstance(outcome.error, AuthFailedError)
    assert verifier.called_keys == ["tenant_3"]


@pytest.mark.asyncio
async def test_unknown_override(corp_tenants, fixed_clock):
    verifier = FakeVerifier()
    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run(
        "bob@corp.com", "pw", tenant_key_override="tenant_9"
    )

    assert isinstance(outcome.error, UnknownTenantOverrideError)
    assert outcome.error.public_reason is FailureReason.AUTH_FAILED
    assert verifier.calls == []


@pytest.mark.asyncio
async def test_signing_failure_is_internal_error(corp_tenants):
    def broken_clock():
        raise RuntimeError("clock unavailable")

    verifier = FakeVerifier({"tenant_1": True})
    outcome = await make_controller(corp_tenants, verifier, broken_clock).run("bob@corp.com", "pw")

    assert isinstance(outcome.error, InternalPortalError)
    assert outcome.redirect_url is None
    assert verifier.called_keys == ["tenant_1"]


@pytest.mark.asyncio
async def test_unreadable_config_is_internal_error(fixed_clock):
    def failing_source():
        raise ConfigSourceError("Tenant config file not found: /missing.ini")

    controller = FailoverController(failing_source, FakeVerifier(), clock=fixed_clock)
    outcome = await controller.run("bob@corp.com", "pw")

    assert isinstance(outcome.error, InternalPortalError)
    assert "not found" in outcome.last_error


@pytest.mark.asyncio
async def test_registry_change_applies_to_next_login(fixed_clock):
    source = StaticTenantSource([make_tenant("tenant_1", "corp.com")])
    verifier = FakeVerifier({"tenant_1": True, "tenant_2": True})
    controller = FailoverController(source.load, verifier, clock=fixed_clock)

    first = await controller.run("bob@new.com", "pw")
    source.replace([make_tenant("tenant_1", "corp.com"), make_tenant("tenant_2", "new.com")])
    second = await controller.run("bob@new.com", "pw")

    assert isinstance(first.error, DomainUnmappedError)
    assert second.ok
    assert second.tenant_key == "tenant_2"


@pytest.mark.asyncio
async def test_missing_credentials_checked_before_config_is_read(fixed_clock):
    source = Mock(side_effect=ConfigSourceError("Tenant config file not found: /missing.ini"))
    controller = FailoverController(source, FakeVerifier(), clock=fixed_clock)

    outcome = await controller.run("bob@corp.com", "")

    assert isinstance(outcome.error, MissingCredentialsError)
    source.assert_not_called()


@pytest.mark.asyncio
async def test_oversized_identifier_is_invalid_email(corp_tenants, fixed_clock):
    verifier = FakeVerifier({"tenant_1": True})
    identifier = "a" * (MAX_IDENTIFIER_CHARS + 1) + "@corp.com"

    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run(identifier, "pw")

    assert isinstance(outcome.error, InvalidEmailError)
    assert outcome.email == ""
    assert verifier.calls == []


@pytest.mark.asyncio
async def test_oversized_password_fails_without_remote_calls(corp_tenants, fixed_clock):
    verifier = FakeVerifier({"tenant_1": True})

    outcome = await make_controller(corp_tenants, verifier, fixed_clock).run(
        "bob@corp.com", "x" * (MAX_PASSWORD_CHARS + 1)
    )

    assert isinstance(outcome.error, AuthFailedError)
    assert outcome.domain == "corp.com"
    assert outcome.last_error
    assert verifier.calls == []
