"""HTTP tests for connect4/api/routes.py and the error mapping of connect4/api/app.py"""

from typing import Iterator
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update
from sqlalchemy.orm import Session

from connect4.api.app import create_app
from connect4.core.config import Settings
from connect4.db.database import get_db
from connect4.db.schema import DBGame


def auth(uid: str, name: str | None = None) -> dict[str, str]:
    headers = {"X-User-Id": uid}
    if name:
        headers["X-User-Name"] = name
    return headers


ALICE = auth("uid-alice", "alice")
BOB = auth("uid-bob", "bob")


@pytest.fixture
def client(db_session_repo: Session) -> Iterator[TestClient]:
    app = create_app(settings=Settings(database_url="sqlite://"), create_tables=False)
    app.dependency_overrides[get_db] = lambda: db_session_repo
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def players(client: TestClient) -> dict[str, UUID]:
    """Profiles of alice and bob exist."""
    return {
        "alice": UUID(client.get("/api/users/me", headers=ALICE).json()["id"]),
        "bob": UUID(client.get("/api/users/me", headers=BOB).json()["id"]),
    }


def start_game(client: TestClient) -> dict:
    created = client.post("/api/games", headers=ALICE)
    assert created.status_code == 201
    joined = client.post(f"/api/games/join/{created.json()['code'].lower()}", headers=BOB)
    assert joined.status_code == 200
    return joined.json()


def turn_headers(game: dict) -> tuple[dict[str, str], dict[str, str]]:
    """(player to move, waiting player)"""
    return (ALICE, BOB) if game["current_turn"] == 1 else (BOB, ALICE)


def test_health(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_identity(client: TestClient) -> None:
    response = client.get("/api/users/me")
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"


def test_unknown_user_cannot_play(client: TestClient) -> None:
    response = client.post("/api/games", headers=auth("uid-nobody"))
    assert response.status_code == 404
    assert response.json()["error"] == "USER_NOT_FOUND"


def test_profile(client: TestClient, players: dict[str, UUID]) -> None:
    me = client.get("/api/users/me", headers=ALICE).json()
    assert (me["username"], me["rating"], me["wins"]) == ("alice", 1200, 0)

    renamed = client.put("/api/users/me", headers=ALICE, json={"username": "alice_the_great"})
    assert renamed.status_code == 200
    assert renamed.json()["username"] == "alice_the_great"

    taken = client.put("/api/users/me", headers=ALICE, json={"username": "bob"})
    assert taken.status_code == 409
    assert taken.json()["error"] == "USERNAME_TAKEN"

    invalid = client.put("/api/users/me", headers=ALICE, json={"username": "a!"})
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "INVALID_USERNAME"


def test_private_game_flow(client: TestClient, players: dict[str, UUID]) -> None:
    game = start_game(client)
    assert game["status"] == "ACTIVE"
    assert game["player2"]["id"] == str(players["bob"])
    mover, waiter = turn_headers(game)

    wrong_turn = client.post(f"/api/games/{game['id']}/move", headers=waiter, json={"column": 3})
    assert wrong_turn.status_code == 403
    assert wrong_turn.json()["error"] == "NOT_YOUR_TURN"

    bad_column = client.post(f"/api/games/{game['id']}/move", headers=mover, json={"column": 9})
    assert bad_column.status_code == 400
    assert bad_column.json()["error"] == "INVALID_COLUMN"

    moved = client.post(f"/api/games/{game['id']}/move", headers=mover, json={"column": 3})
    assert moved.status_code == 200
    body = moved.json()
    assert body["status"] == "move_applied"
    assert body["move"]["row"] == 5
    assert body["game"]["current_turn"] == 3 - game["current_turn"]

    polled = client.get(f"/api/games/by-public/{game['public_id']}", headers=waiter)
    assert polled.status_code == 200
    assert len(polled.json()["moves"]) == 1

    active = client.get("/api/users/me/active-game", headers=BOB).json()["active_game"]
    assert active["id"] == game["id"]


def test_malformed_requests(client: TestClient, players: dict[str, UUID]) -> None:
    bad_code = client.post("/api/games/join/nope", headers=BOB)
    assert bad_code.status_code == 400
    assert bad_code.json()["error"] == "INVALID_CODE_FORMAT"

    game = start_game(client)
    mover, _ = turn_headers(game)
    for column in ("left", 2.5, None, True):
        not_a_column = client.post(f"/api/games/{game['id']}/move", headers=mover, json={"column": column})
        assert not_a_column.status_code == 400
        assert not_a_column.json()["error"] == "INVALID_COLUMN"
    no_column = client.post(f"/api/games/{game['id']}/move", headers=mover, json={})
    assert no_column.json()["error"] == "INVALID_COLUMN"
    assert client.get(f"/api/games/{game['id']}", headers=mover).json()["moves"] == []

    unknown = client.get(f"/api/games/{uuid4()}", headers=ALICE)
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "GAME_NOT_FOUND"


def test_join_own_and_cancelled_game(client: TestClient, players: dict[str, UUID]) -> None:
    created = client.post("/api/games", headers=ALICE).json()

    own = client.post(f"/api/games/join/{created['code']}", headers=ALICE)
    assert own.status_code == 400
    assert own.json()["error"] == "CANNOT_JOIN_OWN_GAME"

    cancelled = client.post(f"/api/games/{created['id']}/cancel", headers=ALICE)
    assert cancelled.json() == {"success": True}

    late = client.post(f"/api/games/join/{created['code']}", headers=BOB)
    assert late.status_code == 409
    assert late.json()["error"] == "GAME_ALREADY_STARTED"


def test_resign_history_and_rematch(client: TestClient, players: dict[str, UUID]) -> None:
    game = start_game(client)

    resigned = client.post(f"/api/games/{game['id']}/resign", headers=BOB)
    assert resigned.status_code == 200
    assert resigned.json()["game"]["winner_id"] == str(players["alice"])
    assert resigned.json()["game"]["ended_reason"] == "RESIGNED"

    again = client.post(f"/api/games/{game['id']}/resign", headers=ALICE)
    assert again.status_code == 409
    assert again.json()["error"] == "GAME_NOT_ACTIVE"

    history = client.get("/api/users/me/games", headers=ALICE, params={"limit": 5}).json()
    assert history["total"] == 1
    assert history["games"][0]["p1_rating_delta"] == 16

    me = client.get("/api/users/me", headers=BOB).json()
    assert (me["rating"], me["losses"]) == (1184, 1)

    requested = client.post(f"/api/games/{game['id']}/rematch", headers=ALICE)
    assert requested.json() == {"status": "requested"}

    accepted = client.post(f"/api/games/{game['id']}/rematch", headers=BOB).json()
    assert accepted["status"] == "accepted"
    assert accepted["game"]["player1"]["id"] == str(players["bob"])
    assert accepted["game"]["current_turn"] == 1

    original = client.get(f"/api/games/{game['id']}", headers=ALICE).json()
    assert original["rematch_public_id"] == accepted["new_public_id"]


def test_claim_against_connected_opponent(client: TestClient, players: dict[str, UUID]) -> None:
    game = start_game(client)

    response = client.post(f"/api/games/{game['id']}/claim-abandoned", headers=ALICE)
    assert response.status_code == 400
    assert response.json()["error"] == "OPPONENT_NOT_ABANDONED"


def test_invariant_violation_is_an_internal_error(
    client: TestClient, players: dict[str, UUID], db_session_repo: Session
) -> None:
    game = start_game(client)
    db_session_repo.execute(update(DBGame).where(DBGame.id == UUID(game["id"])).values(p1_rating_before=None))
    db_session_repo.commit()

    response = client.post(f"/api/games/{game['id']}/resign", headers=ALICE)

    assert response.status_code == 500
    assert response.json()["error"] == "INTERNAL_ERROR"
    assert client.get(f"/api/games/{game['id']}", headers=ALICE).json()["status"] == "ACTIVE"


def test_matchmaking(client: TestClient, players: dict[str, UUID]) -> None:
    assert client.get("/api/matchmaking/status", headers=ALICE).json() == {"status": "not_queued"}

    queued = client.post("/api/matchmaking/join", headers=ALICE)
    assert queued.json() == {"status": "queued"}
    assert client.post("/api/matchmaking/join", headers=ALICE).json() == {"status": "already_queued"}
    assert client.get("/api/matchmaking/status", headers=ALICE).json()["status"] == "queued"

    matched = client.post("/api/matchmaking/join", headers=BOB).json()
    assert matched["status"] == "matched"

    polled = client.get("/api/matchmaking/status", headers=ALICE).json()
    assert polled == {"status": "matched", "game_id": matched["game_id"], "public_id": matched["public_id"]}

    busy = client.post("/api/matchmaking/join", headers=ALICE).json()
    assert busy["status"] == "has_active_game"


def test_leave_queue(client: TestClient, players: dict[str, UUID]) -> None:
    client.post("/api/matchmaking/join", headers=ALICE)

    assert client.delete("/api/matchmaking/leave", headers=ALICE).json() == {"status": "left"}
    assert client.delete("/api/matchmaking/leave", headers=ALICE).json() == {"status": "not_queued"}
