"""Tests for the VAPID key manager."""

import threading

import pytest

from conftest import TEST_PRIVATE_KEY, TEST_PUBLIC_KEY, make_settings
from pickup_push.errors import NotConfiguredError
from pickup_push.services.keys import KeyManager


def test_configured_identity(key_manager):
    identity = key_manager.require_identity()

    assert key_manager.configured is True
    assert key_manager.get_public_key() == TEST_PUBLIC_KEY
    assert identity.private_key == TEST_PRIVATE_KEY
    assert identity.claims == {"sub": "mailto:test@pickup.app"}


def test_private_key_not_in_repr(key_manager):
    assert TEST_PRIVATE_KEY not in repr(key_manager.require_identity())


def test_claims_are_a_fresh_dict(key_manager):
    identity = key_manager.require_identity()
    claims = identity.claims
    claims["aud"] = "https://push.example.com"

    assert identity.claims == {"sub": "mailto:test@pickup.app"}


def test_absent_identity_is_allowed(unconfigured_key_manager):
    assert unconfigured_key_manager.configured is False
    assert unconfigured_key_manager.get_public_key() is None

    with pytest.raises(NotConfiguredError):
        unconfigured_key_manager.require_identity()


def test_half_configured_counts_as_absent():
    manager = KeyManager(make_settings(vapid_private_key=""))

    assert manager.get_public_key() is None


@pytest.mark.parametrize(
    "subject,expected",
    [
        ("ops@pickup.app", "mailto:ops@pickup.app"),
        ("mailto:ops@pickup.app", "mailto:ops@pickup.app"),
        ("https://pickup.app", "https://pickup.app"),
    ],
)
def test_subject_normalized(subject, expected):
    manager = KeyManager(make_settings(vapid_subject=subject))

    assert manager.require_identity().subject == expected


def test_identity_built_once_under_concurrency(monkeypatch):
    manager = KeyManager(make_settings())
    calls = []
    original_build = manager._build

    def counting_build():
        calls.append(threading.get_ident())
        return original_build()

    monkeypatch.setattr(manager, "_build", counting_build)

    barrier = threading.Barrier(8)
    seen = []

    def worker():
        barrier.wait()
        seen.append(manager.identity)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert len(seen) == 8
    assert all(identity is seen[0] for identity in seen)
