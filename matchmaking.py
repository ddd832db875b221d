from collections import deque
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class Status(str, Enum):
    UNSET = "unset"
    IDLE = "idle"
    WAITING = "waiting"
    PAIRED = "paired"


@dataclass
class UserState:
    # Zero state: no gender chosen, no partner, not queued
    gender: Optional[Gender] = None
    partner: Optional[int] = None
    waiting: bool = False

    @property
    def status(self):
        if self.partner is not None:
            return Status.PAIRED
        if self.waiting:
            return Status.WAITING
        if self.gender is None:
            return Status.UNSET
        return Status.IDLE


class UserRegistry:
    def __init__(self):
        self._users: Dict[int, UserState] = {}

    def get_or_create(self, user_id: int) -> UserState:
        state = self._users.get(user_id)
        if state is None:
            state = UserState()
            self._users[user_id] = state
            logger.debug(f"New user {user_id}")
        return state

    def get(self, user_id: int) -> Optional[UserState]:
        return self._users.get(user_id)

    def __contains__(self, user_id):
        return user_id in self._users

    def __len__(self):
        return len(self._users)

    def items(self) -> Iterator[Tuple[int, UserState]]:
        return iter(list(self._users.items()))

    def link(self, user1: int, user2: int):
        """Pair two users. Both sides of the partner relation change together."""
        state1 = self._users[user1]
        state2 = self._users[user2]
        state1.partner, state2.partner = user2, user1
        state1.waiting = state2.waiting = False

    def unlink(self, user_id: int) -> Optional[int]:
        """Break the session of `user_id` and return the former partner, if any."""
        state = self._users[user_id]
        partner_id = state.partner
        if partner_id is None:
            return None
        state.partner = None
        partner_state = self._users.get(partner_id)
        if partner_state is not None and partner_state.partner == user_id:
            partner_state.partner = None
        return partner_id


class WaitQueues:
    """One FIFO wait-list per gender."""

    def __init__(self):
        self._queues: Dict[Gender, deque] = {gender: deque() for gender in Gender}

    def enqueue(self, gender: Gender, user_id: int):
        if user_id in self:
            raise ValueError(f"user {user_id} is already queued")
        self._queues[gender].append(user_id)

    def dequeue_head(self, gender: Gender) -> Optional[int]:
        queue = self._queues[gender]
        return queue.popleft() if queue else None

    def requeue_front(self, gender: Gender, user_id: int):
        if user_id in self:
            raise ValueError(f"user {user_id} is already queued")
        self._queues[gender].appendleft(user_id)

    def remove(self, user_id: int) -> bool:
        for queue in self._queues.values():
            if user_id in queue:
                queue.remove(user_id)
                return True
        return False

    def position(self, user_id: int) -> Optional[int]:
        """0-based place of `user_id` in its queue, None if not queued."""
        for queue in self._queues.values():
            if user_id in queue:
                return queue.index(user_id)
        return None

    def snapshot(self, gender: Gender) -> Tuple[int, ...]:
        return tuple(self._queues[gender])

    def size(self, gender: Gender) -> int:
        return len(self._queues[gender])

    def __contains__(self, user_id):
        return any(user_id in queue for queue in self._queues.values())

    def __len__(self):
        return sum(len(queue) for queue in self._queues.values())


class MatchingEngine:
    def __init__(self, registry: UserRegistry, queues: WaitQueues):
        self.registry = registry
        self.queues = queues

    def match_all(self) -> List[Tuple[int, int]]:
        """Pair queue heads of opposite genders until one side runs dry.

        Strict FIFO on both sides, no scoring. Returns the new pairs as
        (male, female) tuples in the order they were made.
        """
        pairs = []
        while self.queues.size(Gender.MALE) and self.queues.size(Gender.FEMALE):
            male_id = self.queues.dequeue_head(Gender.MALE)
            female_id = self.queues.dequeue_head(Gender.FEMALE)

            stale = [
                user_id for user_id in (male_id, female_id)
                if self.registry.get_or_create(user_id).partner is not None
            ]
            if stale:
                # Queued while paired should never happen; drop the stale
                # entries and put any healthy head back at the front.
                logger.warning(f"Dropping already paired users from queue: {stale}")
                for user_id, gender in ((male_id, Gender.MALE), (female_id, Gender.FEMALE)):
                    if user_id not in stale:
                        self.queues.requeue_front(gender, user_id)
                    else:
                        self.registry.get_or_create(user_id).waiting = False
                continue

            self.registry.link(male_id, female_id)
            pairs.append((male_id, female_id))
            logger.info(f"Matched {male_id} with {female_id}")
        return pairs
