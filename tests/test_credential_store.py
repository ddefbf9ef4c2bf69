import pytest

from biovote.errors import (
    CounterReuseDetected,
    DuplicateCredential,
    DuplicateFingerprint,
    NotFound,
    VoterNotFound,
)


def test_register_and_lookup_voter(credential_store):
    voter = credential_store.register_voter("Grace Hopper", "fp-grace-01")
    assert voter.has_voted is False
    assert credential_store.get_voter(voter.id).name == "Grace Hopper"
    assert credential_store.find_voter_by_fingerprint("fp-grace-01").id == voter.id


def test_duplicate_fingerprint(credential_store):
    credential_store.register_voter("Grace Hopper", "fp-grace-01")
    with pytest.raises(DuplicateFingerprint):
        credential_store.register_voter("Someone Else", "fp-grace-01")


def test_missing_voter(credential_store):
    with pytest.raises(VoterNotFound):
        credential_store.get_voter("missing")
    with pytest.raises(VoterNotFound):
        credential_store.find_voter_by_fingerprint("fp-missing")


def test_add_and_get_authenticators(credential_store, voter):
    assert credential_store.get_authenticators(voter.id) == []
    stored = credential_store.add_authenticator(voter.id, "Y3JlZC0x", b"\xa5key", 3, ["internal"])
    authenticators = credential_store.get_authenticators(voter.id)
    assert [a.id for a in authenticators] == [stored.id]
    assert authenticators[0].counter == 3
    assert authenticators[0].transports == ["internal"]
    assert credential_store.find_authenticator(voter.id, "Y3JlZC0x").id == stored.id


def test_duplicate_credential_id(credential_store, voter):
    other = credential_store.register_voter("Alan Turing", "fp-alan-0001")
    credential_store.add_authenticator(voter.id, "Y3JlZC0x", b"key", 0, [])
    with pytest.raises(DuplicateCredential):
        credential_store.add_authenticator(other.id, "Y3JlZC0x", b"key", 0, [])


def test_update_counter_advances(credential_store, voter):
    stored = credential_store.add_authenticator(voter.id, "Y3JlZC0x", b"key", 5, [])
    updated = credential_store.update_counter(stored.id, 6)
    assert updated.counter == 6


def test_update_counter_refuses_to_go_backwards(credential_store, voter):
    stored = credential_store.add_authenticator(voter.id, "Y3JlZC0x", b"key", 5, [])
    with pytest.raises(CounterReuseDetected):
        credential_store.update_counter(stored.id, 5)
    assert credential_store.get_authenticators(voter.id)[0].counter == 5


def test_update_counter_allows_non_tracking_zero(credential_store, voter):
    stored = credential_store.add_authenticator(voter.id, "Y3JlZC0x", b"key", 0, [])
    assert credential_store.update_counter(stored.id, 0).counter == 0


def test_update_counter_missing_authenticator(credential_store):
    with pytest.raises(NotFound):
        credential_store.update_counter("missing", 1)
