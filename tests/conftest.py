import json

import pytest
from werkzeug.security import generate_password_hash

from app import app as flask_app
from errors import CollaboratorFailure
from storage import JsonFileStore

ADMIN_TOKEN = 'test-admin-token'
ADMIN_PASSWORD = 's3cret'


class RecordingNotifier:
    """Stands in for SlackNotifier; keeps every message it is asked to send."""

    def __init__(self, fail=False):
        self.fail = fail
        self.messages = []
        self.replies = []

    def notify(self, text):
        if self.fail:
            raise CollaboratorFailure('Slack API error: channel_not_found')
        self.messages.append(text)
        return {'ok': True}

    def post_message(self, channel, text):
        if self.fail:
            raise CollaboratorFailure('Slack API error: channel_not_found')
        self.replies.append((channel, text))
        return {'ok': True}


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / 'data.json')


@pytest.fixture
def empty_store(tmp_path):
    path = tmp_path / 'empty.json'
    path.write_text(json.dumps({'doctors': [], 'patients': [], 'appointments': []}), encoding='utf-8')
    return JsonFileStore(path)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(store, notifier):
    keys = ('STORE', 'NOTIFIER', 'ADMIN_TOKEN', 'ADMIN_USERNAME', 'ADMIN_PASSWORD_HASH', 'TESTING')
    saved = {k: flask_app.config.get(k) for k in keys}
    flask_app.config.update(
        TESTING=True,
        STORE=store,
        NOTIFIER=notifier,
        ADMIN_TOKEN=ADMIN_TOKEN,
        ADMIN_USERNAME='admin',
        ADMIN_PASSWORD_HASH=generate_password_hash(ADMIN_PASSWORD),
    )
    with flask_app.test_client() as test_client:
        yield test_client
    flask_app.config.update(saved)
