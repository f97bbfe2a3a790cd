from nofus.models import event as ev
from nofus.models.event import Envelope
from nofus.models.game import GameSnapshot, Phase, Player
from nofus.services.player_session import PlayerSession
from nofus.services.view_projector import project_view


def _sync(blob="sealed-copy"):
    snapshot = GameSnapshot(room_code="ABCD", phase=Phase.LOBBY, players={"p1": Player(id="p1", name="Ana")})
    payload = {"state": project_view(snapshot, "p1").to_wire(), "recovery": blob}
    return Envelope(type=ev.SYNC_STATE, payload=payload, sender_id=ev.SENDER_HOST)


def test_room_joined_stores_identity():
    session = PlayerSession()
    session.on_envelope(
        Envelope(type=ev.ROOM_JOINED, payload={"playerId": "p1", "reconnectToken": "tok", "roomCode": "ABCD"})
    )
    assert (session.player_id, session.reconnect_token, session.room_code) == ("p1", "tok", "ABCD")


def test_sync_state_keeps_view_and_sealed_copy():
    session = PlayerSession(player_id="p1")
    assert session.on_envelope(_sync()) is None
    assert session.view.phase == Phase.LOBBY
    assert session.view.players["p1"].name == "Ana"
    assert session.recovery_blob == "sealed-copy"


def test_recovery_request_returns_sealed_copy_to_host():
    session = PlayerSession(player_id="p1")
    session.on_envelope(_sync("abc"))

    reply = session.on_envelope(Envelope(type=ev.REQUEST_STATE_RECOVERY, payload={}, sender_id=ev.SENDER_HOST))

    assert reply.type == ev.PROVIDE_STATE_RECOVERY
    assert reply.target == ev.TARGET_HOST
    assert reply.payload == {"state": "abc"}


def test_recovery_request_without_copy_sends_null():
    reply = PlayerSession().on_envelope(Envelope(type=ev.REQUEST_STATE_RECOVERY))
    assert reply.payload == {"state": None}


def test_malformed_sync_is_ignored():
    session = PlayerSession()
    session.on_envelope(Envelope(type=ev.SYNC_STATE, payload={"state": {"phase": "nowhere"}}))
    assert session.view is None


def test_action_envelopes_target_the_host():
    envelope = PlayerSession.action(ev.SUBMIT_VOTE, answerId="p2")
    assert envelope.to_wire() == {"type": "SUBMIT_VOTE", "payload": {"answerId": "p2"}, "target": "HOST"}
