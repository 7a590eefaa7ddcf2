"""
In-memory matchmaking: a FIFO of waiting players that pairs them into new ACTIVE games.

The queue lives in this process only. It is a single-writer resource: one lock is held for the whole body of every
operation (including the database reads/writes it does), so "find a partner" and "create their game" are one atomic
step and no entry can be matched twice.
"""

import logging
import random
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional
from uuid import UUID

from connect4.api.models import QueueResponse
from connect4.core.exceptions import UserNotFoundError
from connect4.core.models import GameModel, NewGame, UserModel
from connect4.core.shared_types import GameStatus, PlayerNumber, QueueStatus
from connect4.db.repository import GameRepository, UserRepository
from connect4.db.schema import utc_now
from connect4.services.game_service import Clock, release_waiting_game

logger = logging.getLogger(__name__)

QUEUE_STALE_THRESHOLD = timedelta(seconds=30)
QUEUE_SWEEP_INTERVAL_SEC = 10.0


@dataclass
class QueueEntry:
    user_id: UUID
    username: str
    rating: int
    joined_at: datetime
    last_heartbeat: datetime


class MatchmakingQueue:
    """Waiting players in insertion order, guarded by a single lock."""

    def __init__(self, stale_after: timedelta = QUEUE_STALE_THRESHOLD, clock: Clock = utc_now) -> None:
        self.stale_after = stale_after
        self.clock = clock
        self._lock = threading.Lock()
        self._entries: dict[UUID, QueueEntry] = {}

    @contextmanager
    def exclusive(self) -> Iterator[dict[UUID, QueueEntry]]:
        """Critical section: the entries may only be read or changed inside this block."""
        with self._lock:
            yield self._entries

    def sweep(self) -> int:
        """Remove entries whose owner stopped polling. Called by the periodic sweeper."""
        with self.exclusive() as entries:
            return len(self.remove_stale(entries, self.clock()))

    def remove_stale(self, entries: dict[UUID, QueueEntry], now: datetime) -> list[UUID]:
        """NOTE caller must hold the lock (i.e. be inside `exclusive()`)."""
        stale = [user_id for user_id, entry in entries.items() if now - entry.last_heartbeat > self.stale_after]
        for user_id in stale:
            del entries[user_id]
        if stale:
            logger.warning("Removed %d stale matchmaking entries", len(stale))
        return stale

    def __len__(self) -> int:
        with self.exclusive() as entries:
            return len(entries)

    def __contains__(self, user_id: object) -> bool:
        with self.exclusive() as entries:
            return user_id in entries


class QueueSweeper:
    """Background thread sweeping stale queue entries on a fixed interval."""

    def __init__(self, queue: MatchmakingQueue, interval_sec: float = QUEUE_SWEEP_INTERVAL_SEC) -> None:
        self.queue = queue
        self.interval_sec = interval_sec
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="matchmaking-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval_sec)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_sec):
            try:
                self.queue.sweep()
            except Exception:
                logger.exception("Matchmaking sweep failed")


class MatchmakingService:
    """Queue operations of one request. The queue itself is shared by all requests of the process."""

    def __init__(
        self,
        queue: MatchmakingQueue,
        games: GameRepository,
        users: UserRepository,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self.queue = queue
        self.games = games
        self.users = users
        self.clock = clock
        self.rng = rng or random.Random()

    def join(self, user_id: UUID) -> QueueResponse:
        """
        Enter the queue, or get matched right away with the player waiting the longest.
        ----

        1. already queued? idempotent
        2. in another game? auto-cancel an own unjoined WAITING game, anything else blocks
        3. sweep stale entries, then take the first entry of another user (FIFO)
        4. re-check that user is still free (their entry may be stale): if not, queue the caller instead
        5. otherwise create the ACTIVE game for both
        """
        user = self._fetch_user(user_id)
        now = self.clock()
        with self.queue.exclusive() as entries:
            if user_id in entries:
                return QueueResponse(status=QueueStatus.ALREADY_QUEUED)

            with self.games.transaction():
                blocking = release_waiting_game(self.games, user_id)
                if blocking is not None:
                    return QueueResponse(
                        status=QueueStatus.HAS_ACTIVE_GAME, game_id=blocking.id, public_id=blocking.public_id
                    )

                self.queue.remove_stale(entries, now)

                candidate = next((entry for other_id, entry in entries.items() if other_id != user_id), None)
                if candidate is None:
                    entries[user_id] = self._new_entry(user, now)
                    return QueueResponse(status=QueueStatus.QUEUED)

                del entries[candidate.user_id]
                if self.games.get_active_game_for_user(candidate.user_id) is not None:
                    logger.warning("Matched user %s already has a game, queueing %s instead", candidate.user_id, user_id)
                    entries[user_id] = self._new_entry(user, now)
                    return QueueResponse(status=QueueStatus.QUEUED)

                game = self._create_match(candidate.user_id, user_id, now)

        logger.info("Matched %s with %s in game %s", candidate.user_id, user_id, game.public_id)
        return QueueResponse(status=QueueStatus.MATCHED, game_id=game.id, public_id=game.public_id)

    def status(self, user_id: UUID) -> QueueResponse:
        """Polling endpoint: refreshes the heartbeat, or reports the game somebody else matched us into."""
        now = self.clock()
        with self.queue.exclusive() as entries:
            entry = entries.get(user_id)
            if entry is None:
                active = self.games.get_active_game_for_user(user_id)
                if active is not None and active.status == GameStatus.ACTIVE:
                    return QueueResponse(status=QueueStatus.MATCHED, game_id=active.id, public_id=active.public_id)
                return QueueResponse(status=QueueStatus.NOT_QUEUED)

            entry.last_heartbeat = now
            self.queue.remove_stale(entries, now)
            return QueueResponse(status=QueueStatus.QUEUED, queued_at=entry.joined_at)

    def leave(self, user_id: UUID) -> QueueResponse:
        with self.queue.exclusive() as entries:
            if entries.pop(user_id, None) is not None:
                return QueueResponse(status=QueueStatus.LEFT)
            return QueueResponse(status=QueueStatus.NOT_QUEUED)

    # -- Internal helpers --
    def _create_match(self, waiting_id: UUID, joining_id: UUID, now: datetime) -> GameModel:
        """The player who waited longest is player 1. Snapshots use the live ratings, not the queued ones."""
        player1 = self._fetch_user(waiting_id)
        player2 = self._fetch_user(joining_id)
        first_turn = PlayerNumber.ONE if self.rng.random() < 0.5 else PlayerNumber.TWO
        return self.games.create_game(
            NewGame(
                player1_id=player1.id,
                player2_id=player2.id,
                status=GameStatus.ACTIVE,
                current_turn=first_turn,
                p1_rating_before=player1.rating,
                p2_rating_before=player2.rating,
                player1_last_seen=now,
                player2_last_seen=now,
            )
        )

    def _new_entry(self, user: UserModel, now: datetime) -> QueueEntry:
        return QueueEntry(
            user_id=user.id, username=user.username, rating=user.rating, joined_at=now, last_heartbeat=now
        )

    def _fetch_user(self, user_id: UUID) -> UserModel:
        user = self.users.get_user(user_id)
        if user is None:
            raise UserNotFoundError(f"User with {user_id=} not found.")
        return user
