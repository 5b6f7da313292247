"""
Tests for the decision role permission bitfield codec.

Covers:
  - encode/decode round-trip over all 512 capability combinations
  - update_decision_bits keeps CRUD bits 0-3 and clears admin unless asked
  - update_acrud_bits keeps decision bits 5-8
  - decision_role_bits always sets READ
  - out-of-range / non-int bitfields raise ValueError

Marker: unit (no database).
"""

import itertools

import pytest

from decisionhub.services import permissions as P

pytestmark = pytest.mark.unit

ALL_KEYS = [key for key, _ in P.PERMISSION_BITS]


class TestLayout:
    def test_bit_values_are_fixed(self):
        assert dict(P.PERMISSION_BITS) == {
            "delete": 1,
            "update": 2,
            "read": 4,
            "create": 8,
            "admin": 16,
            "inviteMembers": 32,
            "review": 64,
            "submitProposals": 128,
            "vote": 256,
        }

    def test_masks(self):
        assert P.CRUD_MASK == 0b1111
        assert P.ACRUD_MASK == 0b11111
        assert P.DECISION_MASK == 0b111100000
        assert P.ALL_BITS == 511


class TestRoundTrip:
    def test_all_512_combinations_round_trip(self):
        for flags in itertools.product([False, True], repeat=len(ALL_KEYS)):
            caps = dict(zip(ALL_KEYS, flags))
            value = P.encode(caps)
            assert 0 <= value <= P.ALL_BITS
            assert P.decode(value) == caps

    def test_decode_every_integer_is_stable(self):
        for value in range(P.ALL_BITS + 1):
            assert P.encode(P.decode(value)) == value

    def test_encode_ignores_unknown_keys(self):
        assert P.encode({"read": True, "superpower": True}) == P.READ

    def test_read_vote_example(self):
        assert P.encode({"read": True, "vote": True}) == 260

    def test_decision_only_decode_ignores_acrud_bits(self):
        assert P.from_decision_bitfield(P.ACRUD_MASK | P.VOTE) == {
            "inviteMembers": False,
            "review": False,
            "submitProposals": False,
            "vote": True,
        }

    def test_to_decision_bitfield_drops_acrud_keys(self):
        assert P.to_decision_bitfield({"admin": True, "read": True, "review": True}) == P.REVIEW


class TestUpdateDecisionBits:
    def test_crud_bits_preserved(self):
        for crud in range(P.CRUD_MASK + 1):
            existing = crud | P.ADMIN | P.VOTE
            updated = P.update_decision_bits(existing, {"review": True})
            assert updated & P.CRUD_MASK == crud
            assert updated & P.DECISION_MASK == P.REVIEW

    def test_admin_cleared_when_not_requested(self):
        updated = P.update_decision_bits(P.ADMIN | P.READ, {"vote": True})
        assert not updated & P.ADMIN

    def test_admin_set_when_requested(self):
        updated = P.update_decision_bits(P.READ, {"admin": True})
        assert updated == P.READ | P.ADMIN

    def test_crud_keys_in_caps_are_ignored(self):
        updated = P.update_decision_bits(0, {"delete": True, "read": True, "vote": True})
        assert updated == P.VOTE


class TestUpdateAcrudBits:
    def test_decision_bits_preserved(self):
        existing = P.SUBMIT_PROPOSALS | P.VOTE | P.DELETE
        updated = P.update_acrud_bits(existing, {"read": True, "admin": True})
        assert updated == P.SUBMIT_PROPOSALS | P.VOTE | P.READ | P.ADMIN

    def test_decision_keys_in_caps_are_ignored(self):
        assert P.update_acrud_bits(0, {"vote": True, "create": True}) == P.CREATE


class TestDecisionRoleBits:
    def test_read_forced_on(self):
        assert P.decision_role_bits({}) == P.READ
        assert P.decision_role_bits({"read": False, "vote": True}) == P.READ | P.VOTE

    def test_has_bits(self):
        assert P.has_bits(P.READ | P.VOTE, P.VOTE)
        assert not P.has_bits(P.READ, P.VOTE)
        assert P.has_bits(P.ADMIN, 0)


class TestRangeChecks:
    @pytest.mark.parametrize("value", [-1, 512, 1024, P.ALL_BITS + 1])
    def test_out_of_range_raises(self, value):
        with pytest.raises(ValueError, match="outside"):
            P.decode(value)

    @pytest.mark.parametrize("value", ["4", 4.0, None, True])
    def test_non_int_raises(self, value):
        with pytest.raises(ValueError, match="must be an int"):
            P.decode(value)

    def test_update_rejects_bad_existing(self):
        with pytest.raises(ValueError):
            P.update_decision_bits(1 << 9, {"vote": True})
        with pytest.raises(ValueError):
            P.update_acrud_bits(-4, {"read": True})
