import os
import threading

import pytest

from mock_routing.data import ImmutableData, ImmutableDataType, PlainData, StructuredData
from mock_routing.errors import (Conflict, IdentityMismatch, MalformedRequest, NotFound,
                                 QuorumNotMet, VersionMismatch)
from mock_routing.store import DataStore
from mock_routing.utils import NameType, ed25519_keypair
from mock_routing.validator import MutationValidator, count_owner_signatures, quorum_size


def test_quorum_size_is_strict_majority():
    assert [quorum_size(n) for n in range(1, 7)] == [1, 2, 2, 3, 3, 4]
    assert quorum_size(0) == 1


def test_immutable_put_is_idempotent(validator, store):
    """PUT of identical content twice leaves the store as after one PUT."""
    data = ImmutableData(ImmutableDataType.NORMAL, os.urandom(100))
    validator.put(data.name(), data)
    snapshot = store.snapshot()
    validator.put(data.name(), data)
    assert store.snapshot() == snapshot
    assert len(store) == 1


def test_immutable_put_with_other_kind_conflicts(validator):
    raw = os.urandom(100)
    normal = ImmutableData(ImmutableDataType.NORMAL, raw)
    backup = ImmutableData(ImmutableDataType.BACKUP, raw)
    validator.put(normal.name(), normal)
    with pytest.raises(Conflict):
        validator.put(normal.name(), backup)
    assert validator.get(normal.name()) == normal


def test_immutable_names_depend_on_kind():
    raw = b"same bytes"
    names = {ImmutableData(kind, raw).name() for kind in ImmutableDataType}
    assert len(names) == 3
    assert ImmutableData(ImmutableDataType.NORMAL, raw).name() == ImmutableData(ImmutableDataType.NORMAL, raw).name()


def test_get_after_put_returns_same_record(validator, make_version):
    sd = make_version(0, b"p0")
    validator.put(sd.name(), sd)
    assert validator.get(sd.name()) == sd


def test_get_missing_raises_not_found(validator):
    with pytest.raises(NotFound):
        validator.get(NameType.random())


def test_plain_data_cannot_be_stored(validator):
    name = NameType.random()
    with pytest.raises(MalformedRequest):
        validator.put(name, PlainData(name, b"x"))


def test_structured_put_twice_conflicts(validator, make_version):
    sd = make_version(0, b"p0")
    validator.put(sd.name(), sd)
    with pytest.raises(Conflict):
        validator.put(sd.name(), sd)
    with pytest.raises(Conflict):
        validator.put(sd.name(), make_version(1, b"p1", "AB"))


def test_structured_put_must_start_at_version_zero(validator, make_version, store):
    sd = make_version(1, b"p1", "AB")
    with pytest.raises(Conflict):
        validator.put(sd.name(), sd)
    assert sd.name() not in store


def test_post_requires_next_version(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    for bad in (0, 2, 5):
        with pytest.raises(VersionMismatch):
            validator.post(v0.name(), make_version(bad, b"x", "ABC"))
    validator.post(v0.name(), make_version(1, b"p1", "ABC"))
    assert validator.get(v0.name()).version == 1


def test_post_quorum_of_three_owners(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    with pytest.raises(QuorumNotMet):
        validator.post(v0.name(), make_version(1, b"p1", "A"))
    validator.post(v0.name(), make_version(1, b"p1", "AC"))
    assert validator.get(v0.name()).data == b"p1"


def test_post_quorum_of_four_owners_needs_three():
    keys = [ed25519_keypair() for _ in range(4)]
    owners = [vk for _, vk in keys]
    identifier = NameType.random()
    validator = MutationValidator(DataStore())

    def version(v, signers):
        return StructuredData.new(1, identifier, v, b"x", owners, signing_keys=[keys[i][0] for i in signers])

    v0 = version(0, [])
    validator.put(v0.name(), v0)
    with pytest.raises(QuorumNotMet):
        validator.post(v0.name(), version(1, [0, 1]))
    validator.post(v0.name(), version(1, [0, 1, 2]))


def test_repeated_signatures_of_one_owner_count_once(validator, make_version, owner_keys):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    sk_a = owner_keys["A"][0]
    twice = make_version(1, b"p1").sign(sk_a).sign(sk_a)
    with pytest.raises(QuorumNotMet):
        validator.post(v0.name(), twice)


def test_signature_from_stranger_does_not_count(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    stranger_sk, _ = ed25519_keypair()
    proposal = make_version(1, b"p1", "A").sign(stranger_sk)
    with pytest.raises(QuorumNotMet):
        validator.post(v0.name(), proposal)


def test_quorum_is_checked_against_stored_owners(validator, make_version):
    """Replacing the owner list in a proposal does not bypass the stored owners."""
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    sk, vk = ed25519_keypair()
    hijack = StructuredData.new(v0.type_tag, v0.identifier, 1, b"mine", [vk], signing_keys=[sk])
    with pytest.raises(QuorumNotMet):
        validator.post(v0.name(), hijack)


def test_signatures_over_other_content_do_not_count(make_version, owner_keys):
    signed = make_version(1, b"p1", "ABC")
    tampered = StructuredData(signed.type_tag, signed.identifier, 1, b"tampered",
                              signed.owners, signed.signatures)
    assert count_owner_signatures(signed.owners, tampered.signatures, tampered.data_to_sign()) == 0
    assert count_owner_signatures(signed.owners, signed.signatures, signed.data_to_sign()) == 3


def test_post_with_other_identity_fails(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    other = make_version(1, b"p1", "ABC", identifier=NameType.random())
    with pytest.raises(IdentityMismatch):
        validator.post(v0.name(), other)
    other_tag = make_version(1, b"p1", "ABC", type_tag=1000)
    with pytest.raises(IdentityMismatch):
        validator.post(v0.name(), other_tag)


def test_post_to_missing_record_fails(validator, make_version):
    v1 = make_version(1, b"p1", "ABC")
    with pytest.raises(NotFound):
        validator.post(v1.name(), v1)


def test_post_and_delete_of_immutable_data_fail(validator):
    data = ImmutableData(ImmutableDataType.NORMAL, b"chunk")
    validator.put(data.name(), data)
    with pytest.raises(MalformedRequest):
        validator.post(data.name(), data)
    with pytest.raises(MalformedRequest):
        validator.delete(data.name(), data)
    assert validator.get(data.name()) == data


def test_post_over_immutable_record_conflicts(validator, make_version):
    data = ImmutableData(ImmutableDataType.NORMAL, b"chunk")
    validator.put(data.name(), data)
    with pytest.raises(Conflict):
        validator.post(data.name(), make_version(1, b"p1", "ABC"))


def test_delete_then_get_not_found(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    validator.delete(v0.name(), make_version(1, b"", "AB"))
    with pytest.raises(NotFound):
        validator.get(v0.name())


def test_delete_requires_version_bump_and_quorum(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    with pytest.raises(VersionMismatch):
        validator.delete(v0.name(), make_version(0, b"p0", "ABC"))
    with pytest.raises(QuorumNotMet):
        validator.delete(v0.name(), make_version(1, b"", "B"))
    assert validator.get(v0.name()) == v0


def test_record_can_be_recreated_after_delete(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    validator.delete(v0.name(), make_version(1, b"", "AB"))
    validator.put(v0.name(), make_version(0, b"again"))
    assert validator.get(v0.name()).data == b"again"


def test_stored_version_only_moves_by_one(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    seen = [0]
    for proposed in [1, 3, 2, 2, 4, 3, 4]:
        try:
            validator.post(v0.name(), make_version(proposed, b"x%d" % proposed, "ABC"))
        except VersionMismatch:
            pass
        current = validator.get(v0.name()).version
        assert current - seen[-1] in (0, 1)
        seen.append(current)
    assert seen[-1] == 4


def test_sync_hook_runs_after_each_mutation(make_version):
    snapshots = []
    store = DataStore(sync_hook=snapshots.append)
    validator = MutationValidator(store)
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    validator.post(v0.name(), make_version(1, b"p1", "AB"))
    with pytest.raises(QuorumNotMet):
        validator.post(v0.name(), make_version(2, b"p2", "A"))
    validator.delete(v0.name(), make_version(2, b"", "BC"))
    assert [len(s) for s in snapshots] == [1, 1, 0]


def test_end_to_end_owner_scenario(validator, make_version):
    """Owners A, B, C: PUT v0, POST v1 by A+B, stale v1 by C, v2 by C, v2 by B+C."""
    v0 = make_version(0, b"p0")
    location = v0.name()
    validator.put(location, v0)

    validator.post(location, make_version(1, b"p1", "AB"))
    stored = validator.get(location)
    assert (stored.version, stored.data) == (1, b"p1")

    with pytest.raises(VersionMismatch):
        validator.post(location, make_version(1, b"p2", "C"))
    with pytest.raises(QuorumNotMet):
        validator.post(location, make_version(2, b"p2", "C"))

    validator.post(location, make_version(2, b"p2", "BC"))
    stored = validator.get(location)
    assert (stored.version, stored.data) == (2, b"p2")


def test_owner_listed_twice_counts_per_entry(validator):
    sk, vk = ed25519_keypair()
    identifier = NameType.random()
    v0 = StructuredData.new(1, identifier, 0, b"p0", [vk, vk])
    validator.put(v0.name(), v0)
    v1 = StructuredData.new(1, identifier, 1, b"p1", [vk, vk], signing_keys=[sk])
    assert count_owner_signatures(v0.owners, v1.signatures, v1.data_to_sign()) == 2
    validator.post(v0.name(), v1)
    assert validator.get(v0.name()).version == 1


def test_concurrent_posts_of_same_version_apply_once(validator, make_version):
    v0 = make_version(0, b"p0")
    validator.put(v0.name(), v0)
    proposals = [make_version(1, f"p1-{i}".encode(), "AB") for i in range(8)]
    accepted, mismatched = [], []
    barrier = threading.Barrier(len(proposals))

    def post(record):
        barrier.wait()
        try:
            validator.post(v0.name(), record)
            accepted.append(record)
        except VersionMismatch:
            mismatched.append(record)

    threads = [threading.Thread(target=post, args=(p,)) for p in proposals]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(accepted) == 1
    assert len(mismatched) == len(proposals) - 1
    assert validator.get(v0.name()) == accepted[0]
