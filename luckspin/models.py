"""Sectors (wheel slices) and participants."""
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum

from luckspin.errors import InvalidConfiguration


class SectorKind(str, Enum):
    PHYSICAL = 'PHYSICAL'
    CURRENCY = 'CURRENCY'
    EMPTY = 'EMPTY'


class Tier(str, Enum):
    """Participant variant. Privileged accounts always land the rarest sector."""
    STANDARD = 'STANDARD'
    PRIVILEGED = 'PRIVILEGED'


@dataclass(frozen=True)
class Sector:
    id: str
    name: str
    kind: SectorKind = SectorKind.PHYSICAL
    weight: float = 0.0
    amount: float = None
    color: str = '#64748b'
    icon: str = 'Gift'
    image_url: str = None

    @classmethod
    def from_dict(cls, data):
        """
        Build a sector from its JSON form. Weight is read from 'probability'
        (the stored key) or 'weight'; anything malformed is rejected.
        """
        if not isinstance(data, dict):
            raise InvalidConfiguration(f"Sector must be an object, got {type(data).__name__}")

        name = data.get('name')
        if not isinstance(name, str) or not name.strip():
            raise InvalidConfiguration("Sector name must be a non-empty string")

        raw_weight = data.get('probability', data.get('weight'))
        if isinstance(raw_weight, bool) or not isinstance(raw_weight, (int, float)):
            raise InvalidConfiguration(f"Sector '{name}' has a non-numeric weight: {raw_weight!r}")
        if raw_weight < 0:
            raise InvalidConfiguration(f"Sector '{name}' has a negative weight: {raw_weight}")

        try:
            kind = SectorKind(str(data.get('type', data.get('kind', SectorKind.PHYSICAL.value))).upper())
        except ValueError:
            raise InvalidConfiguration(f"Sector '{name}' has an unknown type: {data.get('type')!r}")

        amount = data.get('amount')
        if amount is not None and (isinstance(amount, bool) or not isinstance(amount, (int, float))):
            raise InvalidConfiguration(f"Sector '{name}' has a non-numeric amount: {amount!r}")

        return cls(
            id=str(data.get('id') or uuid.uuid4()),
            name=name.strip(),
            kind=kind,
            weight=float(raw_weight),
            amount=amount,
            color=data.get('color', '#64748b'),
            icon=data.get('icon') or 'Gift',
            image_url=data.get('image_url', data.get('imageUrl')),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.kind.value,
            'amount': self.amount,
            'probability': self.weight,
            'color': self.color,
            'icon': self.icon,
            'image_url': self.image_url,
        }


@dataclass(frozen=True)
class Participant:
    name: str
    id: str = field(default_factory=lambda: f"u-{uuid.uuid4().hex[:12]}")
    tier: Tier = Tier.STANDARD
    has_played: bool = False
    won_prize: str = None
    won_at: str = None

    @property
    def is_privileged(self):
        return self.tier is Tier.PRIVILEGED

    def record_win(self, sector, when):
        """Played flag and outcome are set together, exactly once."""
        return replace(self, has_played=True, won_prize=sector.name, won_at=when)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'tier': self.tier.value,
            'has_played': self.has_played,
            'won_prize': self.won_prize,
            'won_at': self.won_at,
        }


def sectors_from_dicts(items):
    """Parse a candidate sector list, enforcing unique ids."""
    if not isinstance(items, list):
        raise InvalidConfiguration("Sector list must be a JSON array")
    sectors = [Sector.from_dict(item) for item in items]
    seen = set()
    for sector in sectors:
        if sector.id in seen:
            raise InvalidConfiguration(f"Duplicate sector id: {sector.id}")
        seen.add(sector.id)
    return sectors


def top_prizes(sectors, count=3):
    """Rarest sectors first; sorted() is stable so ties keep wheel order."""
    return sorted(sectors, key=lambda s: s.weight)[:count]


DEFAULT_SECTORS = [
    Sector(id='1', name='Hair Dryer', kind=SectorKind.PHYSICAL, weight=0.2, color='#fcd34d', icon='Zap'),
    Sector(id='2', name='1000 Gold', kind=SectorKind.CURRENCY, amount=1000, weight=5, color='#0ea5e9', icon='Coins'),
    Sector(id='3', name='Controller', kind=SectorKind.PHYSICAL, weight=0.5, color='#fcd34d', icon='Gamepad'),
    Sector(id='4', name='500 Gold', kind=SectorKind.CURRENCY, amount=500, weight=15, color='#0ea5e9', icon='Coins'),
    Sector(id='5', name='Sneakers', kind=SectorKind.PHYSICAL, weight=0.2, color='#fcd34d', icon='Footprints'),
    Sector(id='6', name='100 Gold', kind=SectorKind.CURRENCY, amount=100, weight=30, color='#0ea5e9', icon='Coins'),
    Sector(id='7', name='Try Again', kind=SectorKind.EMPTY, weight=49.1, color='#fcd34d', icon='Frown'),
    Sector(id='8', name='Bonus', kind=SectorKind.CURRENCY, amount=50, weight=0, color='#0ea5e9', icon='Star'),
]

DEFAULT_PARTICIPANTS = [
    Participant(id='1', name='Demo User 1'),
    Participant(id='2', name='Demo User 2'),
]
