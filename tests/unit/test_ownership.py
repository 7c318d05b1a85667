import pytest

from idprov.core.ownership import Decision, authorize


@pytest.mark.parametrize(
    "claimed, requested",
    [("bob", "bob"), ("Bob", "bob"), ("bob", "BOB"), (" alice ", "Alice")],
)
def test_same_identity_is_allowed(claimed, requested):
    decision = authorize(claimed, requested)

    assert decision is Decision.ALLOW
    assert decision.allowed


@pytest.mark.parametrize(
    "claimed, requested",
    [("bob", "alice"), ("bob", ""), ("", ""), ("", "bob"), (None, "bob")],
)
def test_other_identity_is_denied(claimed, requested):
    decision = authorize(claimed, requested)

    assert decision is Decision.DENY
    assert not decision.allowed


def test_deny_is_logged(caplog):
    with caplog.at_level("WARNING", logger="idprov.core.ownership"):
        authorize("bob", "mallory")

    assert "mallory" in caplog.text
