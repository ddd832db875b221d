import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from matchmaking import Gender, MatchingEngine, Status, UserRegistry, UserState, WaitQueues
import messages

logger = logging.getLogger(__name__)


# Errors
class ChatError(Exception):
    """A recoverable user mistake. `message` tells the user what to do next."""

    message = ""

    def __init__(self, user_id: int):
        super().__init__(f"{type(self).__name__}: user {user_id}")
        self.user_id = user_id


class NoCategoryDeclared(ChatError):
    message = messages.NO_GENDER_MSG


class AlreadyInSession(ChatError):
    message = messages.ALREADY_IN_CHAT_MSG


class AlreadySearching(ChatError):
    message = messages.ALREADY_SEARCHING_MSG


class NotInSession(ChatError):
    message = messages.NOT_IN_CHAT_MSG


class NotSearching(ChatError):
    message = messages.NOT_SEARCHING_MSG


class Keyboard(str, Enum):
    GENDER = "gender"
    START = "start"


@dataclass(frozen=True)
class Notification:
    user_id: int
    text: str
    keyboard: Optional[Keyboard] = None
    # Relayed user text, must be delivered verbatim
    raw: bool = False


Notifier = Callable[[Notification], Awaitable[None]]


class SessionController:
    """Owns the registry and both wait-lists.

    Every entry point runs its state transition under one lock and collects
    the outgoing notifications; they are handed to `notify` only after the
    lock is released, in the order they were produced. Entry points never
    raise `ChatError`, the user gets the corrective text instead.
    """

    def __init__(self, notify: Notifier):
        self.registry = UserRegistry()
        self.queues = WaitQueues()
        self.engine = MatchingEngine(self.registry, self.queues)
        self._notify = notify
        self._lock = asyncio.Lock()

    # Entry points
    async def begin(self, user_id: int):
        await self._run(user_id, self._begin)

    async def declare_category(self, user_id: int, gender: Gender):
        await self._run(user_id, lambda uid, state, outbox: self._declare(uid, state, gender, outbox))

    async def start_search(self, user_id: int):
        await self._run(user_id, self._start)

    async def end_session(self, user_id: int):
        await self._run(user_id, self._end)

    async def next_partner(self, user_id: int):
        await self._run(user_id, self._next)

    async def cancel_search(self, user_id: int):
        await self._run(user_id, self._cancel)

    async def relay(self, user_id: int, text: str):
        async with self._lock:
            partner_id = self.registry.get_or_create(user_id).partner

        if partner_id is None:
            await self._deliver([Notification(user_id, NotInSession.message)])
        else:
            await self._deliver([Notification(partner_id, text, raw=True)])

    def status(self, user_id: int) -> Status:
        state = self.registry.get(user_id)
        return state.status if state is not None else Status.UNSET

    def stats(self) -> Dict[str, int]:
        paired = sum(1 for _, state in self.registry.items() if state.partner is not None)
        return {
            "users": len(self.registry),
            "waiting_male": self.queues.size(Gender.MALE),
            "waiting_female": self.queues.size(Gender.FEMALE),
            "sessions": paired // 2,
        }

    def check_invariants(self):
        """Raise AssertionError if the shared state is inconsistent."""
        def expect(condition, message):
            if not condition:
                raise AssertionError(message)

        for gender in Gender:
            queued = self.queues.snapshot(gender)
            expect(len(queued) == len(set(queued)), f"duplicate entries in {gender.value} queue")
            for user_id in queued:
                state = self.registry.get(user_id)
                expect(state is not None, f"unknown user {user_id} queued")
                expect(state.waiting and state.partner is None, f"user {user_id} queued but {state.status.value}")
                expect(state.gender is gender, f"user {user_id} queued under {gender.value}")
        both = set(self.queues.snapshot(Gender.MALE)) & set(self.queues.snapshot(Gender.FEMALE))
        expect(not both, f"users {sorted(both)} queued under both genders")

        for user_id, state in self.registry.items():
            expect(not (state.waiting and state.partner is not None), f"user {user_id} waiting while paired")
            if state.waiting:
                expect(user_id in self.queues, f"user {user_id} waiting but not queued")
            if state.partner is not None:
                partner = self.registry.get(state.partner)
                expect(partner is not None and partner.partner == user_id, f"asymmetric session for {user_id}")

    # Internals, called with the lock held
    async def _run(self, user_id: int, transition):
        outbox: List[Notification] = []
        async with self._lock:
            state = self.registry.get_or_create(user_id)
            try:
                transition(user_id, state, outbox)
            except ChatError as e:
                logger.debug(str(e))
                outbox.append(Notification(user_id, e.message))
        await self._deliver(outbox)

    async def _deliver(self, outbox: List[Notification]):
        for notification in outbox:
            await self._notify(notification)

    def _begin(self, user_id: int, state: UserState, outbox: List[Notification]):
        outbox.append(Notification(user_id, messages.WELCOME_MSG, Keyboard.GENDER))

    def _declare(self, user_id: int, state: UserState, gender: Gender, outbox: List[Notification]):
        if state.waiting and state.gender is not gender:
            self.queues.remove(user_id)
            state.waiting = False
            outbox.append(Notification(user_id, messages.SEARCH_WITHDRAWN_MSG))
        state.gender = gender
        label = messages.GENDER_LABELS[gender.value]
        outbox.append(Notification(user_id, messages.GENDER_SET_MSG.format(gender=label), Keyboard.START))

    def _start(self, user_id: int, state: UserState, outbox: List[Notification]):
        if state.gender is None:
            raise NoCategoryDeclared(user_id)
        if state.partner is not None:
            raise AlreadyInSession(user_id)
        if state.waiting:
            raise AlreadySearching(user_id)

        state.waiting = True
        self.queues.enqueue(state.gender, user_id)
        outbox.append(Notification(user_id, messages.SEARCHING_MSG))

        for male_id, female_id in self.engine.match_all():
            outbox.append(Notification(male_id, messages.MATCHED_MSG))
            outbox.append(Notification(female_id, messages.MATCHED_MSG))

    def _end(self, user_id: int, state: UserState, outbox: List[Notification]):
        if state.partner is None:
            raise NotInSession(user_id)

        partner_id = self.registry.unlink(user_id)
        self.queues.remove(user_id)
        self.queues.remove(partner_id)
        logger.info(f"Chat between {user_id} and {partner_id} ended by {user_id}")

        outbox.append(Notification(user_id, messages.CHAT_ENDED_MSG))
        outbox.append(Notification(partner_id, messages.PARTNER_LEFT_MSG))

    def _next(self, user_id: int, state: UserState, outbox: List[Notification]):
        try:
            self._end(user_id, state, outbox)
        except NotInSession:
            pass
        self._start(user_id, state, outbox)

    def _cancel(self, user_id: int, state: UserState, outbox: List[Notification]):
        if not state.waiting:
            raise NotSearching(user_id)
        self.queues.remove(user_id)
        state.waiting = False
        outbox.append(Notification(user_id, messages.SEARCH_CANCELED_MSG))
