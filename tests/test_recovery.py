import base64

import pytest

from nofus.models.game import Article, GameSnapshot, Phase, Player, Round
from nofus.services.recovery import RecoveryError, derive_key, seal, unseal
from nofus.utils.codes import secret_token

TOKEN = "host-token-for-tests"


def _snapshot():
    return GameSnapshot(
        room_code="ABCD",
        phase=Phase.VOTING,
        players={
            "A": Player(id="A", name="Alice", score=1200, is_vip=True),
            "B": Player(id="B", name="Bob", avatar_id=4),
        },
        rounds=[
            Round(
                target_player_id="B",
                article=Article(id="1", title="Zèbre", summary="Un équidé rayé"),
                lies={"A": "Un poisson"},
                votes={"A": "B"},
                shuffled_answer_ids=["B", "A"],
            )
        ],
        timer=12,
        expert_ready=True,
    )


def test_seal_unseal_round_trip():
    snapshot = _snapshot()
    blob = seal(snapshot, TOKEN)

    assert isinstance(blob, str)
    assert "Zèbre" not in blob
    recovered = unseal(blob, TOKEN)
    assert recovered.to_wire() == snapshot.to_wire()
    assert recovered.phase == Phase.VOTING
    assert recovered.players["A"].score == 1200


def test_each_seal_uses_a_fresh_nonce():
    snapshot = _snapshot()
    assert seal(snapshot, TOKEN) != seal(snapshot, TOKEN)


def test_wrong_token_is_rejected():
    blob = seal(_snapshot(), TOKEN)
    with pytest.raises(RecoveryError):
        unseal(blob, "another-host-token")


def test_tampered_blob_is_rejected():
    raw = bytearray(base64.b64decode(seal(_snapshot(), TOKEN)))
    raw[-1] ^= 0x01
    with pytest.raises(RecoveryError):
        unseal(base64.b64encode(bytes(raw)).decode("ascii"), TOKEN)


@pytest.mark.parametrize("blob", ["", "not base64 !!", base64.b64encode(b"short").decode("ascii")])
def test_garbage_is_rejected(blob):
    with pytest.raises(RecoveryError):
        unseal(blob, TOKEN)


def test_tokens_sharing_a_long_prefix_get_distinct_keys():
    token = secret_token()
    other = token[:32] + ("A" if token[32] != "A" else "B") + token[33:]

    assert derive_key(token) != derive_key(other)
    with pytest.raises(RecoveryError):
        unseal(seal(_snapshot(), token), other)


def test_short_tokens_are_accepted():
    assert len(derive_key("abc")) == 32
    assert derive_key("abc") != derive_key("abc" + "0" * 29)
    assert unseal(seal(_snapshot(), "abc"), "abc").room_code == "ABCD"
