"""Tests for Tracker API endpoints."""

import pytest
from fastapi.testclient import TestClient

from tracker.main import create_app


@pytest.fixture
def app(clock):
    """Create a tracker app on the fake clock."""
    return create_app(ttl_seconds=30, sweep_interval_seconds=5, clock=clock)


@pytest.fixture
def client(app):
    """Create FastAPI test client with lifespan (sweeper) running."""
    with TestClient(app) as test_client:
        yield test_client


def test_health_endpoint(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json()['status'] == 'healthy'
    assert response.json()['peers'] == 0


def test_alice_scenario(client):
    """Register, list, conflicting register, unregister, list."""
    response = client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:8001'})
    assert response.status_code == 200

    response = client.get('/list')
    assert response.status_code == 200
    assert response.json() == [{'name': 'alice', 'address': '127.0.0.1:8001'}]

    response = client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:9999'})
    assert response.status_code == 409
    assert response.json()['code'] == 'PEER_NAME_CONFLICT'

    response = client.post('/unregister_peer', json={'peer': 'alice'})
    assert response.status_code == 200

    response = client.get('/list')
    assert response.status_code == 200
    assert response.json() == []


def test_register_returns_stored_record(client):
    response = client.post('/register', json={'name': ' bob ', 'address': 'peer-host.local:8002'})

    assert response.status_code == 200
    data = response.json()
    assert data['name'] == 'bob'
    assert data['address'] == 'peer-host.local:8002'
    assert data['status'] == 'active'
    assert data['registered_at'] == data['last_seen']
    assert 'X-Request-ID' in response.headers


def test_list_keeps_registration_order(client):
    for i, name in enumerate(['carol', 'alice', 'bob']):
        client.post('/register', json={'name': name, 'address': f'127.0.0.1:{8001 + i}'})

    response = client.get('/list')

    assert [peer['name'] for peer in response.json()] == ['carol', 'alice', 'bob']


@pytest.mark.parametrize('body', [
    {'name': 'alice'},
    {'address': '127.0.0.1:8001'},
    {'name': 'alice', 'address': 8001},
    {'name': '   ', 'address': '127.0.0.1:8001'},
    {'name': 'alice', 'address': 'not-an-address'},
    {'name': 'alice', 'address': '127.0.0.1:99999'},
    {'name': 'alice', 'address': '127.0.0.1:\u00b2'},
])
def test_register_bad_input_is_400(client, body):
    response = client.post('/register', json=body)

    assert response.status_code == 400
    assert response.json()['code'] == 'INVALID_ARGUMENT'


def test_register_non_json_body_is_400(client):
    response = client.post(
        '/register',
        content=b'name=alice',
        headers={'Content-Type': 'application/json'}
    )
    assert response.status_code == 400


def test_unregister_unknown_peer_is_200(client):
    response = client.post('/unregister_peer', json={'peer': 'ghost'})

    assert response.status_code == 200
    assert response.json() == {'peer': 'ghost', 'removed': False}


def test_unregister_missing_field_is_400(client):
    response = client.post('/unregister_peer', json={'name': 'alice'})
    assert response.status_code == 400


def test_heartbeat_refreshes_peer(client, clock):
    client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:8001'})
    clock.advance(10)

    response = client.post('/heartbeat', json={'peer': 'alice'})

    assert response.status_code == 200
    data = response.json()
    assert data['last_seen'] != data['registered_at']


def test_heartbeat_unknown_peer_is_404(client):
    response = client.post('/heartbeat', json={'peer': 'ghost'})

    assert response.status_code == 404
    assert response.json()['code'] == 'PEER_NOT_FOUND'


def test_evicted_peer_absent_from_list_and_can_rejoin(client, app, clock):
    client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:8001'})
    clock.advance(31)

    app.state.sweeper.sweep_once()

    assert client.get('/list').json() == []
    response = client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:8001'})
    assert response.status_code == 200


def test_stale_unswept_peer_can_rejoin(client, clock):
    client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:8001'})
    clock.advance(31)

    response = client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:9999'})

    assert response.status_code == 200
    assert client.get('/list').json() == [{'name': 'alice', 'address': '127.0.0.1:9999'}]


def test_invalid_liveness_settings_rejected():
    with pytest.raises(ValueError):
        create_app(ttl_seconds=5, sweep_interval_seconds=10)


def announce(client, peer, content_hash, file_name, size_bytes=3):
    return client.post('/register_file', json={
        'peer': peer, 'hash': content_hash, 'file_name': file_name, 'size_bytes': size_bytes
    })


def test_file_directory_scenario(client):
    """Register peers, announce a file from both, look it up, withdraw, unregister."""
    content_hash = 'c' * 64
    client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:8001'})
    client.post('/register', json={'name': 'bob', 'address': '127.0.0.1:8002'})

    response = announce(client, 'alice', content_hash, 'c.txt')
    assert response.status_code == 200
    assert response.json()['peer'] == 'alice'
    assert response.json()['hash'] == content_hash
    announce(client, 'bob', content_hash, 'c.txt')

    response = client.get('/file_peers', params={'file': content_hash})
    assert response.status_code == 200
    assert response.json() == [
        {'name': 'alice', 'address': '127.0.0.1:8001', 'hash': content_hash,
         'file_name': 'c.txt', 'size_bytes': 3},
        {'name': 'bob', 'address': '127.0.0.1:8002', 'hash': content_hash,
         'file_name': 'c.txt', 'size_bytes': 3},
    ]

    response = client.post('/unregister_file', json={'peer': 'alice', 'file': 'c.txt'})
    assert response.status_code == 200
    assert response.json()['removed'] == 1
    assert [p['name'] for p in client.get('/file_peers', params={'file': 'c.txt'}).json()] == ['bob']

    client.post('/unregister_peer', json={'peer': 'bob'})
    assert client.get('/file_peers', params={'file': content_hash}).json() == []
    assert client.get('/health').json()['file_holdings'] == 0


def test_register_file_unknown_peer_is_404(client):
    response = announce(client, 'ghost', 'c' * 64, 'c.txt')

    assert response.status_code == 404
    assert response.json()['code'] == 'PEER_NOT_FOUND'


@pytest.mark.parametrize('body', [
    {'peer': 'alice', 'hash': 'not-a-hash', 'file_name': 'c.txt', 'size_bytes': 3},
    {'peer': 'alice', 'hash': 'c' * 64, 'file_name': '', 'size_bytes': 3},
    {'peer': 'alice', 'hash': 'c' * 64, 'file_name': 'c.txt', 'size_bytes': -1},
    {'peer': 'alice', 'hash': 'c' * 64, 'file_name': 'c.txt'},
])
def test_register_file_bad_input_is_400(client, body):
    client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:8001'})

    response = client.post('/register_file', json=body)

    assert response.status_code == 400
    assert response.json()['code'] == 'INVALID_ARGUMENT'


def test_file_peers_unknown_file_is_empty(client):
    response = client.get('/file_peers', params={'file': 'missing.txt'})

    assert response.status_code == 200
    assert response.json() == []


def test_file_peers_requires_file_param(client):
    response = client.get('/file_peers')

    assert response.status_code == 400


def test_unregister_file_unknown_is_200(client):
    response = client.post('/unregister_file', json={'peer': 'ghost', 'file': 'c.txt'})

    assert response.status_code == 200
    assert response.json() == {'peer': 'ghost', 'file': 'c.txt', 'removed': 0}


def test_evicted_peer_drops_out_of_file_peers(client, app, clock):
    client.post('/register', json={'name': 'alice', 'address': '127.0.0.1:8001'})
    announce(client, 'alice', 'c' * 64, 'c.txt')
    clock.advance(31)

    app.state.sweeper.sweep_once()

    assert client.get('/file_peers', params={'file': 'c.txt'}).json() == []
    assert len(app.state.file_directory) == 0
