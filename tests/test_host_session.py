import asyncio
import random
from unittest.mock import Mock

from nofus.models import event as ev
from nofus.models.event import Envelope, GameEvent
from nofus.models.game import Article, GameSnapshot, Phase, Player, Round
from nofus.services.host_session import STATUS_RUNNING, HostSession
from nofus.services.player_session import PlayerSession
from nofus.services.recovery import seal

TOKEN = "host-token-for-tests"


class FakeTransport:
    """Transport en mémoire : garde les enveloppes émises, peut répondre aux demandes de récupération."""

    def __init__(self):
        self.sent = []
        self.players = {}
        self.session = None

    async def send(self, envelope):
        self.sent.append(envelope)
        if envelope.type == ev.REQUEST_STATE_RECOVERY and envelope.target in self.players:
            reply = self.players[envelope.target].on_envelope(envelope)
            self.session.on_envelope(reply.model_copy(update={"sender_id": envelope.target}))

    def of_type(self, kind):
        return [e for e in self.sent if e.type == kind]


def _session(transport, **kwargs):
    session = HostSession(transport=transport, host_token=TOKEN, room_code="ABCD", rng=random.Random(5), **kwargs)
    transport.session = session
    return session


def _roster(*ids, disconnected=()):
    return {"players": [{"id": pid, "name": pid, "isConnected": pid not in disconnected} for pid in ids]}


def _voting_snapshot():
    return GameSnapshot(
        room_code="ABCD",
        phase=Phase.VOTING,
        players={
            "A": Player(id="A", name="A", is_vip=True, score=1200),
            "B": Player(id="B", name="B", score=700),
            "C": Player(id="C", name="C"),
            "E": Player(id="E", name="E"),
        },
        rounds=[
            Round(
                target_player_id="E",
                article=Article(id="x", title="X", summary="vrai"),
                lies={"A": "la", "B": "lb", "C": "lc"},
                votes={"A": "E"},
                shuffled_answer_ids=["C", "A", "E", "B"],
            )
        ],
        timer=20,
    )


def test_recovery_resumes_game_from_a_player_copy():
    async def scenario():
        transport = FakeTransport()
        session = _session(transport)
        blob = seal(_voting_snapshot(), TOKEN)
        for pid in ("A", "B", "C", "E"):
            transport.players[pid] = PlayerSession(player_id=pid, recovery_blob=blob)

        roster = _roster("A", "B", "C", "E", disconnected=("C", "E"))
        session.on_envelope(Envelope(type=ev.HOST_CONNECTED, payload=roster))
        await session.process_pending()
        return session, transport

    session, transport = asyncio.run(scenario())

    assert session.status == STATUS_RUNNING
    assert session.snapshot.phase == Phase.VOTING
    assert session.snapshot.players["A"].score == 1200
    assert session.snapshot.players["A"].is_vip is True
    assert [r.to_wire() for r in session.snapshot.rounds] == [r.to_wire() for r in _voting_snapshot().rounds]
    requests = transport.of_type(ev.REQUEST_STATE_RECOVERY)
    assert len(requests) == 1
    assert requests[0].target in {"A", "B"}
    synced = {e.target for e in transport.of_type(ev.SYNC_STATE)}
    assert synced == {"A", "B"}
    assert transport.of_type(ev.SYNC_STATE)[0].payload["recovery"]


def test_no_connected_player_starts_fresh_without_request():
    async def scenario():
        transport = FakeTransport()
        session = _session(transport)
        session.on_envelope(Envelope(type=ev.HOST_CONNECTED, payload=_roster("A", disconnected=("A",))))
        await session.process_pending()
        return session, transport

    session, transport = asyncio.run(scenario())

    assert session.snapshot.phase == Phase.LOBBY
    assert session.snapshot.players == {}
    assert transport.of_type(ev.REQUEST_STATE_RECOVERY) == []


def test_recovery_timeout_falls_back_to_fresh_lobby():
    async def scenario():
        transport = FakeTransport()  # personne ne répond
        session = _session(transport, recovery_timeout=0.05)
        session.on_envelope(Envelope(type=ev.HOST_CONNECTED, payload=_roster("A", "B")))
        await session.process_pending()
        return session, transport

    session, transport = asyncio.run(scenario())

    assert len(transport.of_type(ev.REQUEST_STATE_RECOVERY)) == 1
    assert session.snapshot.phase == Phase.LOBBY
    assert set(session.snapshot.players) == {"A", "B"}
    assert session.snapshot.players["A"].is_vip is True


def test_copy_sealed_with_another_token_is_rejected():
    async def scenario():
        transport = FakeTransport()
        session = _session(transport)
        forged = seal(_voting_snapshot(), "someone-else")
        transport.players = {pid: PlayerSession(player_id=pid, recovery_blob=forged) for pid in ("A", "B")}
        session.on_envelope(Envelope(type=ev.HOST_CONNECTED, payload=_roster("A", "B")))
        await session.process_pending()
        return session

    session = asyncio.run(scenario())
    assert session.snapshot.phase == Phase.LOBBY


def test_reply_from_another_player_is_ignored():
    session = HostSession(transport=FakeTransport(), host_token=TOKEN)
    session.on_envelope(Envelope(type=ev.PROVIDE_STATE_RECOVERY, payload={"state": "x"}, sender_id="B"))
    assert session.snapshot is None


def test_player_actions_flow_through_the_reducer():
    async def scenario():
        transport = FakeTransport()
        session = _session(transport)
        session.on_envelope(Envelope(type=ev.HOST_CONNECTED, payload=_roster()))
        for pid in ("A", "B", "C"):
            session.on_envelope(Envelope(type=ev.PLAYER_CONNECTED, payload={"playerId": pid, "playerName": pid}))
        session.on_envelope(Envelope(type=ev.START_GAME, target="HOST", sender_id="A"))
        await session.process_pending()
        return session, transport

    session, transport = asyncio.run(scenario())

    assert session.snapshot.phase == Phase.TUTORIAL
    last_for_b = [e for e in transport.of_type(ev.SYNC_STATE) if e.target == "B"][-1]
    assert last_for_b.payload["state"]["phase"] == "tutorial"
    assert last_for_b.payload["state"]["playerId"] == "B"


def test_topic_selection_fetches_articles_per_player_and_system():
    def fake_fetch(count):
        return [Article(id=f"{count}-{i}", title=f"Article {i}") for i in range(count)]

    content = Mock()
    content.fetch_articles.side_effect = fake_fetch

    async def scenario():
        transport = FakeTransport()
        session = _session(transport, content=content)
        session.snapshot = GameSnapshot(
            room_code="ABCD",
            phase=Phase.TUTORIAL,
            players={pid: Player(id=pid, name=pid, is_vip=(pid == "A")) for pid in ("A", "B", "C")},
        )
        session.dispatch(GameEvent(type=ev.NEXT_PHASE, sender_id=ev.SENDER_HOST))
        await session.process_pending()
        await asyncio.gather(*list(session._tasks))
        await session.process_pending()
        return session

    session = asyncio.run(scenario())

    assert session.snapshot.phase == Phase.TOPIC_SELECTION
    assert all(len(session.snapshot.article_options[pid]) == 6 for pid in ("A", "B", "C"))
    assert len(session.snapshot.system_articles) == 3
    assert content.fetch_articles.call_count == 4


def test_host_url_carries_token():
    from nofus.services.host_link import host_url

    url = host_url("ws://relay:3000/", "ABCD", "a b+c")
    assert url == "ws://relay:3000/api/v1/rooms/ABCD/ws?token=a+b%2Bc"
