import json
from types import SimpleNamespace

import pytest

from luckspin import generator
from luckspin.errors import GeneratorError
from luckspin.models import SectorKind
from tests.conftest import StubRandom


class FakeClient:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self.create))

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


PRIZES = {'prizes': [
    {'name': 'Motorbike', 'type': 'PHYSICAL', 'probability': 0.5, 'icon': 'Bike'},
    {'name': '500 Gold', 'type': 'CURRENCY', 'amount': 500, 'probability': 20, 'icon': 'Coins'},
    {'name': 'Try Again', 'type': 'EMPTY', 'amount': None, 'probability': 79.5, 'icon': 'Smile'},
]}


def test_generated_prizes_become_candidate_sectors():
    client = FakeClient(json.dumps(PRIZES))

    sectors = generator.generate_sectors('New Year event', client=client, rng=StubRandom())

    assert [s.name for s in sectors] == ['Motorbike', '500 Gold', 'Try Again']
    assert sectors[1].kind is SectorKind.CURRENCY
    assert sectors[1].amount == 500
    assert sectors[2].amount == 0
    assert all(s.id.startswith('gen-') for s in sectors)
    assert len({s.id for s in sectors}) == 3
    assert all(s.color == generator.PALETTE[0] for s in sectors)
    assert 'New Year event' in client.requests[0]['messages'][0]['content']


def test_code_fences_are_stripped():
    client = FakeClient("```json\n" + json.dumps(PRIZES) + "\n```")
    assert len(generator.generate_sectors('party', client=client)) == 3


def test_invalid_prize_is_rejected():
    bad = {'prizes': [{'name': 'Oops', 'type': 'PHYSICAL', 'probability': -5}]}
    with pytest.raises(GeneratorError, match='rejected'):
        generator.generate_sectors('party', client=FakeClient(json.dumps(bad)))


def test_service_failure_is_reported():
    with pytest.raises(GeneratorError):
        generator.generate_sectors('party', client=FakeClient(error=RuntimeError('boom')))
    with pytest.raises(GeneratorError):
        generator.generate_sectors('party', client=FakeClient('not json'))
    with pytest.raises(GeneratorError):
        generator.generate_sectors('party', client=FakeClient(''))


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv('OPENAI_API_KEY', raising=False)
    with pytest.raises(GeneratorError, match='API Key'):
        generator.generate_sectors('party')


def test_empty_prompt():
    with pytest.raises(GeneratorError):
        generator.generate_sectors('   ', client=FakeClient(json.dumps(PRIZES)))
