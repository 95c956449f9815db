"""Per-user conversation state machine.

The state decides which free-text input is meaningful. Transitions are
persisted on the user profile; `can_transition` encodes the legal edges and
`ensure_transition` is the checked entry point used by message handlers.
"""

from __future__ import annotations

from loguru import logger

from app.analytics.service import AnalyticsService, EventType
from app.core.errors import InvalidStateTransitionError
from app.users.models import UserState
from app.users.repository import UserRepository

_EDIT_STATES = frozenset(
    {
        UserState.EDIT_EQUIPMENT,
        UserState.EDIT_EXPERIENCE,
        UserState.EDIT_PERSONAL_DATA,
        UserState.EDIT_GOAL,
    }
)


def can_transition(from_state: UserState, to_state: UserState) -> bool:
    """Return True if `from_state -> to_state` is a legal edge."""
    match from_state:
        case UserState.IDLE:
            return to_state in _EDIT_STATES or to_state in {
                UserState.ONBOARDING_MEDICAL_CONFIRM,
                UserState.WORKOUT_REQUESTED,
                UserState.SCHEDULING_DATE,
            }
        # Onboarding chain
        case UserState.ONBOARDING_MEDICAL_CONFIRM:
            return to_state == UserState.ONBOARDING_EQUIPMENT
        case UserState.ONBOARDING_EQUIPMENT:
            return to_state == UserState.ONBOARDING_EXPERIENCE
        case UserState.ONBOARDING_EXPERIENCE:
            return to_state == UserState.ONBOARDING_PERSONAL_DATA
        case UserState.ONBOARDING_PERSONAL_DATA:
            return to_state == UserState.ONBOARDING_GOALS
        case UserState.ONBOARDING_GOALS:
            return to_state == UserState.IDLE
        # Workout flow
        case UserState.WORKOUT_REQUESTED:
            return to_state in {UserState.IDLE, UserState.WORKOUT_IN_PROGRESS}
        case UserState.WORKOUT_IN_PROGRESS:
            return to_state == UserState.WORKOUT_FEEDBACK_PENDING
        case UserState.WORKOUT_FEEDBACK_PENDING:
            return to_state == UserState.IDLE
        # Profile editing and scheduling
        case UserState.EDIT_EQUIPMENT | UserState.EDIT_EXPERIENCE | UserState.EDIT_PERSONAL_DATA | UserState.EDIT_GOAL:
            return to_state == UserState.IDLE
        case UserState.SCHEDULING_DATE:
            return to_state == UserState.IDLE


class FSMManager:
    def __init__(self, user_repository: UserRepository, analytics: AnalyticsService):
        self._users = user_repository
        self._analytics = analytics

    async def get_current_state(self, user_id: int) -> UserState:
        """Persisted state, or IDLE when the user has no profile."""
        profile = await self._users.find_by_id(user_id)
        return profile.fsm_state if profile else UserState.IDLE

    @staticmethod
    def can_transition(from_state: UserState, to_state: UserState) -> bool:
        return can_transition(from_state, to_state)

    async def transition_to(self, user_id: int, new_state: UserState) -> None:
        """Persist `new_state` unconditionally.

        Legality is not checked here: resets and cancellations jump straight
        to IDLE or onboarding. Use `ensure_transition` for checked moves.
        """
        old_state = await self.get_current_state(user_id)
        await self._users.update_state(user_id, new_state)

        if old_state != new_state:
            logger.debug(f"[FSM] User {user_id}: {old_state} -> {new_state}")
            try:
                self._analytics.track(
                    user_id,
                    EventType.STATE_CHANGE,
                    f"{old_state} -> {new_state}",
                    {"from": old_state.value, "to": new_state.value},
                )
            except Exception as e:
                logger.warning(f"[FSM] Failed to schedule state-change event for user {user_id}: {e}")

    async def ensure_transition(self, user_id: int, new_state: UserState) -> None:
        """Transition only if the edge is legal.

        Raises:
            InvalidStateTransitionError: If the current state does not allow `new_state`
        """
        current = await self.get_current_state(user_id)
        if not can_transition(current, new_state):
            logger.warning(f"[FSM] Rejected transition for user {user_id}: {current} -> {new_state}")
            raise InvalidStateTransitionError(current.value, new_state.value)
        await self.transition_to(user_id, new_state)
