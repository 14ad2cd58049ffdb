"""Test configuration and fixtures"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from qobuz_sync.config.credentials import CredentialStore
from qobuz_sync.config.settings import Settings
from qobuz_sync.core.exceptions import TransportFailure
from qobuz_sync.qobuz.models import RawResponse
from qobuz_sync.sync.service import QobuzService

USER_ID = "4242"


@dataclass
class FakeCall:
    """One request issued through FakeDispatcher"""
    resource: str
    params: Dict[str, str]
    requires_auth: bool
    token: Optional[str]
    future: asyncio.Future = field(repr=False)

    @property
    def done(self) -> bool:
        return self.future.done()


class FakeDispatcher:
    """
    Dispatcher double: issue() returns a bare future the test resolves

    Replies can be delivered in any order, which is the whole point.
    """

    def __init__(self, context=None):
        self.context = context
        self.calls: List[FakeCall] = []

    def issue(self, resource, params, requires_auth=False):
        future = asyncio.get_running_loop().create_future()
        token = self.context.token if self.context is not None else None
        self.calls.append(FakeCall(
            resource=resource,
            params={key: str(value) for key, value in params.items()},
            requires_auth=requires_auth,
            token=token,
            future=future,
        ))
        return future

    def calls_for(self, resource: str) -> List[FakeCall]:
        return [call for call in self.calls if call.resource == resource]

    def last(self, resource: str) -> FakeCall:
        return self.calls_for(resource)[-1]

    @staticmethod
    def reply(call: FakeCall, body: Any = None, status: int = 200) -> None:
        raw = json.dumps(body if body is not None else {}).encode('utf-8')
        call.future.set_result(RawResponse(resource=call.resource, status=status, body=raw))

    @staticmethod
    def fail(call: FakeCall) -> None:
        call.future.set_result(TransportFailure("connection refused", details={'resource': call.resource}))


async def flush(rounds: int = 10) -> None:
    """Let reply handlers scheduled on the loop run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


def track_record(track_id, title="Song", streamable=True, duration=210, **extra) -> Dict[str, Any]:
    record = {
        'id': track_id,
        'title': title,
        'streamable': streamable,
        'duration': duration,
        'track_number': 1,
        'performer': {'name': 'Performer'},
        'album': {
            'title': 'Album',
            'released_at': 1262304000,
            'genre': {'name': 'Jazz'},
            'image': {'large': 'http://img/large.jpg'},
            'artist': {'name': 'Album Artist'},
        },
    }
    record.update(extra)
    return record


def tracks_body(*records) -> Dict[str, Any]:
    return {'items': list(records), 'total': len(records)}


def playlist_record(playlist_id, name="Playlist", owner_id=USER_ID, collaborative=False) -> Dict[str, Any]:
    return {
        'id': playlist_id,
        'name': name,
        'owner': {'id': owner_id, 'name': 'someone'},
        'is_collaborative': collaborative,
    }


@pytest.fixture
def settings():
    """Settings with a short debounce interval"""
    s = Settings()
    s.qobuz.app_id = "100000000"
    s.qobuz.app_secret = "secret"
    s.qobuz.base_url = "http://qobuz.test/api.json/0.2"
    s.search.debounce_ms = 20
    return s


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "session.json")


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def service(settings, store, dispatcher):
    svc = QobuzService(settings=settings, store=store, dispatcher=dispatcher)
    dispatcher.context = svc.context
    return svc


def open_session(service, token="tok-1", lossless=False):
    """Open a session directly, bypassing the login call"""
    service.context.open(token=token, user_id=USER_ID, user_mail="me@example.com", lossless=lossless)
    service.store.save(service.context.to_dict())
