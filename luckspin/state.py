"""
Application state and the functions that move it forward.

AppState is immutable; every transition returns a new value. GameSession is
the one place that holds the current value and serializes updates to it.
"""
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime

from luckspin import selector
from luckspin.animator import SpinAnimator
from luckspin.errors import (AlreadyPlayed, InvalidConfiguration, NotLoggedIn,
                             ParticipantNotFound)
from luckspin.models import DEFAULT_PARTICIPANTS, DEFAULT_SECTORS, Participant, Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppState:
    sectors: tuple = tuple(DEFAULT_SECTORS)
    participants: tuple = tuple(DEFAULT_PARTICIPANTS)
    current_participant: str = None
    is_spinning: bool = False
    winning_index: int = None
    last_winner: object = None
    last_draw_by: str = None
    spins_started: int = 0


def _normalize_name(name):
    return (name or '').strip().lower()


def find_participant(state, name):
    wanted = _normalize_name(name)
    return next((p for p in state.participants if _normalize_name(p.name) == wanted), None)


def _replace_participant(state, updated):
    return tuple(updated if p.id == updated.id else p for p in state.participants)


def login(state, name):
    participant = find_participant(state, name)
    if participant is None:
        raise ParticipantNotFound("User not found in the eligible list.")
    if participant.has_played:
        raise AlreadyPlayed("This user has already played!")
    return replace(state, current_participant=participant.id)


def logout(state):
    return replace(state, current_participant=None)


def current_participant(state):
    if state.current_participant is None:
        return None
    return next((p for p in state.participants if p.id == state.current_participant), None)


def last_drawer(state):
    """The participant who started the most recent draw, whoever is logged in now."""
    if state.last_draw_by is None:
        return None
    return next((p for p in state.participants if p.id == state.last_draw_by), None)


def start_draw(state, index, when=None):
    """
    Record the already-selected winner on the logged-in participant and mark
    the wheel as spinning. The participant is marked as played right away.
    """
    participant = current_participant(state)
    if participant is None:
        raise NotLoggedIn("No participant is logged in")
    if participant.has_played:
        raise AlreadyPlayed("This user has already played!")
    if not 0 <= index < len(state.sectors):
        raise InvalidConfiguration(f"Winning index {index} is not on the wheel")

    sector = state.sectors[index]
    when = when or datetime.now().isoformat()
    updated = participant.record_win(sector, when)
    return replace(
        state,
        participants=_replace_participant(state, updated),
        is_spinning=True,
        winning_index=index,
        last_draw_by=participant.id,
        spins_started=state.spins_started + 1,
    )


def finish_draw(state):
    if state.winning_index is None:
        return replace(state, is_spinning=False)
    return replace(state, is_spinning=False, last_winner=state.sectors[state.winning_index])


def add_participants(state, names, tier=Tier.STANDARD):
    new = tuple(Participant(name=name.strip(), tier=tier) for name in names if name and name.strip())
    return replace(state, participants=state.participants + new)


def remove_participant(state, participant_id):
    if not any(p.id == participant_id for p in state.participants):
        raise ParticipantNotFound(f"No participant with id {participant_id}")
    current = None if state.current_participant == participant_id else state.current_participant
    return replace(
        state,
        participants=tuple(p for p in state.participants if p.id != participant_id),
        current_participant=current,
    )


def set_tier(state, participant_id, tier):
    participant = next((p for p in state.participants if p.id == participant_id), None)
    if participant is None:
        raise ParticipantNotFound(f"No participant with id {participant_id}")
    return replace(state, participants=_replace_participant(state, replace(participant, tier=Tier(tier))))


def replace_sectors(state, sectors):
    if state.is_spinning:
        raise InvalidConfiguration("Cannot change sectors while the wheel is spinning")
    if not sectors:
        raise InvalidConfiguration("Sector list must not be empty")
    ids = [s.id for s in sectors]
    if len(set(ids)) != len(ids):
        raise InvalidConfiguration("Sector ids must be unique")
    return replace(state, sectors=tuple(sectors), winning_index=None, last_winner=None)


class GameSession:
    """
    Holds the live AppState and the wheel's animator.

    `draw` is the orchestrating caller: it selects, records, and only then
    hands the decided index to the animator.
    """

    def __init__(self, state=None, animator=None, rng=None):
        self.state = state or AppState()
        self.animator = animator or SpinAnimator()
        self.rng = rng
        self._lock = threading.RLock()

    def dispatch(self, transition, *args, **kwargs):
        with self._lock:
            self.state = transition(self.state, *args, **kwargs)
            return self.state

    def draw(self, on_complete=None):
        """
        Run one draw for the logged-in participant. Returns (sector, spin
        transition). `on_complete` is called with the winning sector once the
        wheel has settled.
        """
        with self._lock:
            if self.state.is_spinning or self.animator.is_spinning:
                return None, None

            participant = current_participant(self.state)
            if participant is None:
                raise NotLoggedIn("No participant is logged in")
            if participant.has_played:
                raise AlreadyPlayed("This user has already played!")

            sectors = list(self.state.sectors)
            index = selector.select(sectors, rigged=participant.is_privileged, rng=self.rng)
            self.state = start_draw(self.state, index)
            winner = sectors[index]
            logger.info(f"🏆 Winner for '{participant.name}': '{winner.name}' (sector {index})")

            def settled():
                self.dispatch(finish_draw)
                if on_complete:
                    on_complete(winner)

            transition = self.animator.spin(index, len(sectors), on_complete=settled)
            return winner, transition

    def status(self):
        with self._lock:
            state = self.state
            participant = current_participant(state)
            return {
                'is_spinning': state.is_spinning,
                'spins_started': state.spins_started,
                'current_participant': participant.to_dict() if participant else None,
                'last_winner': state.last_winner.to_dict() if state.last_winner else None,
                'wheel': self.animator.to_dict(),
            }
