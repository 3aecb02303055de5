"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API, using Flask's test client.
"""

import importlib

import numpy as np
import pytest

from backprop.mnist_loader import Dataset
from backprop.network import Network


@pytest.fixture
def server(tmp_path, monkeypatch):
    """Import the API server against empty model and data directories."""
    monkeypatch.setenv('MODEL_DIR', str(tmp_path / 'models'))
    monkeypatch.setenv('MNIST_DATA_DIR', str(tmp_path / 'data'))
    monkeypatch.setenv('CLEANUP_ENABLED', 'false')

    import backprop.api_server as api_server
    api_server = importlib.reload(api_server)
    api_server.app.config['TESTING'] = True
    return api_server


@pytest.fixture
def client(server):
    return server.app.test_client()


@pytest.fixture
def small_data(server):
    """Install a tiny four-input, two-class data set."""
    rng = np.random.default_rng(0)
    inputs = rng.uniform(size=(8, 4))
    labels = np.eye(2)[[0, 1, 0, 1, 0, 1, 0, 1]]
    server.training_data = Dataset(inputs, labels)
    server.test_data = Dataset(inputs[:4], labels[:4])
    return server


def _create(client, layer_sizes, seed=0):
    response = client.post('/api/networks', json={'layer_sizes': layer_sizes, 'seed': seed})
    assert response.status_code == 201
    return response.get_json()['network_id']


@pytest.mark.integration
class TestNetworkEndpoints:
    """Test creating, asking and deleting networks."""

    def test_status(self, client):
        """Test that the status endpoint reports an empty server."""
        response = client.get('/api/status')

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'online'
        assert body['active_networks'] == 0
        assert body['data_loaded'] is False

    def test_no_index_page(self, client):
        """Test that the server exposes only the API routes."""
        assert client.get('/').status_code == 404

    def test_create_network(self, client):
        """Test that a network is created with the requested topology."""
        response = client.post('/api/networks', json={'layer_sizes': [4, 3, 2]})

        assert response.status_code == 201
        body = response.get_json()
        assert body['architecture'] == [4, 3, 2]
        assert body['status'] == 'created'

    @pytest.mark.parametrize('layer_sizes', [[4], [4, 0, 2], 'wide'])
    def test_create_invalid_network(self, client, layer_sizes):
        """Test that invalid topologies are rejected with 400."""
        response = client.post('/api/networks', json={'layer_sizes': layer_sizes})

        assert response.status_code == 400
        assert 'error' in response.get_json()

    @pytest.mark.parametrize('seed', ['abc', 1.5, -3, True])
    def test_create_invalid_seed(self, client, seed):
        """Test that a seed other than a non-negative integer is rejected with 400."""
        response = client.post('/api/networks', json={'layer_sizes': [4, 3, 2], 'seed': seed})

        assert response.status_code == 400
        assert 'seed' in response.get_json()['error']

    def test_ask(self, client):
        """Test that asking returns one output per class and a prediction."""
        network_id = _create(client, [4, 3, 2])

        response = client.post(f'/api/networks/{network_id}/ask',
                               json={'input': [0.1, 0.2, 0.3, 0.4]})

        assert response.status_code == 200
        body = response.get_json()
        assert len(body['output']) == 2
        assert body['predicted'] == int(np.argmax(body['output']))

    def test_ask_wrong_size(self, client):
        """Test that a wrongly sized input is a client error."""
        network_id = _create(client, [4, 3, 2])

        response = client.post(f'/api/networks/{network_id}/ask',
                               json={'input': [0.1, 0.2]})

        assert response.status_code == 400

    def test_ask_unknown_network(self, client):
        """Test that asking an unknown network returns 404."""
        response = client.post('/api/networks/missing/ask', json={'input': [0.0]})

        assert response.status_code == 404

    def test_list_and_delete(self, client):
        """Test that created networks are listed and can be deleted."""
        network_id = _create(client, [4, 3, 2])

        listed = client.get('/api/networks').get_json()['networks']
        assert [n['network_id'] for n in listed] == [network_id]

        response = client.delete(f'/api/networks/{network_id}')
        assert response.status_code == 200
        assert response.get_json()['deleted_from_memory'] is True

        assert client.delete(f'/api/networks/{network_id}').status_code == 404

    def test_example_unknown_network(self, client):
        """Test that examples for an unknown network return 404."""
        assert client.get('/api/networks/missing/successful_example').status_code == 404
        assert client.get('/api/networks/missing/unsuccessful_example').status_code == 404

    def test_cleanup_rejects_negative_days(self, client):
        """Test that cleanup refuses a negative age."""
        response = client.post('/api/networks/cleanup', json={'days': -1})

        assert response.status_code == 400


@pytest.mark.integration
class TestTrainingEndpoints:
    """Test starting and running training jobs."""

    def test_train_without_data(self, client):
        """Test that training is unavailable when no data is loaded."""
        network_id = _create(client, [4, 3, 2])

        response = client.post(f'/api/networks/{network_id}/train', json={})

        assert response.status_code == 503

    def test_train_unknown_network(self, client):
        """Test that training an unknown network returns 404."""
        assert client.post('/api/networks/missing/train', json={}).status_code == 404

    def test_train_invalid_parameters(self, client, small_data):
        """Test that non-positive training parameters are rejected."""
        network_id = _create(client, [4, 3, 2])

        for body in ({'cycles': 0}, {'num_workers': -1},
                     {'samples_per_worker': 'many'}, {'learning_rate': 0}):
            response = client.post(f'/api/networks/{network_id}/train', json=body)
            assert response.status_code == 400

    def test_train_starts_job(self, client, small_data, monkeypatch):
        """Test that a training job is registered and handed to a background task."""
        started = []
        monkeypatch.setattr(
            small_data.socketio, 'start_background_task',
            lambda *args: started.append(args)
        )
        network_id = _create(client, [4, 3, 2])

        response = client.post(f'/api/networks/{network_id}/train',
                               json={'cycles': 2, 'num_workers': 2})

        assert response.status_code == 202
        job_id = response.get_json()['job_id']
        assert len(started) == 1
        status = client.get(f'/api/training/{job_id}').get_json()
        assert status['status'] == 'pending'
        assert status['cycles'] == 2

    def test_training_task_runs_cycles(self, client, small_data):
        """Test that the training task trains, validates and saves."""
        server = small_data
        network_id = _create(client, [4, 3, 2])
        job_id = 'job-1'
        server.training_jobs[job_id] = {
            'network_id': network_id, 'status': 'pending', 'progress': 0, 'cycles': 2
        }

        server.train_network_task(network_id, job_id, 2, 0.5, 2, 2)

        job = server.training_jobs[job_id]
        assert job['status'] == 'completed'
        assert job['progress'] == 100
        assert 0.0 <= job['accuracy'] <= 1.0
        net = server.active_networks[network_id]['network']
        assert net.completed_cycles == 2

        saved = client.get('/api/networks').get_json()['networks'][0]
        assert saved['trained'] is True
        assert saved['completed_cycles'] == 2

    def test_training_yields_between_rounds(self, client, small_data, monkeypatch):
        """Test that training hands control back to gevent after every round."""
        server = small_data
        callbacks = []
        sleeps = []
        original_train = Network.train

        def recording_train(net, *args, **kwargs):
            callbacks.append(kwargs.get('callback'))
            return original_train(net, *args, **kwargs)

        monkeypatch.setattr(Network, 'train', recording_train)
        monkeypatch.setattr(server.gevent, 'sleep', lambda seconds=0: sleeps.append(seconds))
        network_id = _create(client, [4, 3, 2])
        server.training_jobs['job-1'] = {
            'network_id': network_id, 'status': 'pending', 'progress': 0, 'cycles': 2
        }

        server.train_network_task(network_id, 'job-1', 2, 0.5, 2, 2)

        assert server.training_jobs['job-1']['status'] == 'completed'
        assert len(callbacks) == 2
        assert all(callable(callback) for callback in callbacks)
        # 8 examples in rounds of 2 x 2 give 2 rounds per cycle, plus one
        # yield per progress update and one after completion
        assert len(sleeps) == 2 * 2 + 2 + 1

    def test_network_deleted_during_training(self, client, small_data, monkeypatch):
        """Test that deleting a network mid-training fails the job cleanly."""
        server = small_data
        emitted = []
        original_train = Network.train
        network_id = _create(client, [4, 3, 2])

        def train_then_delete(net, *args, **kwargs):
            original_train(net, *args, **kwargs)
            client.delete(f'/api/networks/{network_id}')

        monkeypatch.setattr(Network, 'train', train_then_delete)
        monkeypatch.setattr(server.socketio, 'emit',
                            lambda event, payload: emitted.append((event, payload)))
        server.training_jobs['job-1'] = {
            'network_id': network_id, 'status': 'pending', 'progress': 0, 'cycles': 3
        }

        server.train_network_task(network_id, 'job-1', 3, 0.5, 2, 2)

        job = server.training_jobs['job-1']
        assert job['status'] == 'failed'
        assert network_id in job['error']
        assert [event for event, _ in emitted] == ['training_error']
        assert emitted[0][1]['job_id'] == 'job-1'

    def test_unexpected_error_fails_job(self, client, small_data, monkeypatch):
        """Test that any error raised while training marks the job failed."""
        server = small_data
        emitted = []

        def broken_train(net, *args, **kwargs):
            raise RuntimeError('disk full')

        monkeypatch.setattr(Network, 'train', broken_train)
        monkeypatch.setattr(server.socketio, 'emit',
                            lambda event, payload: emitted.append((event, payload)))
        network_id = _create(client, [4, 3, 2])
        server.training_jobs['job-1'] = {
            'network_id': network_id, 'status': 'pending', 'progress': 0, 'cycles': 1
        }

        server.train_network_task(network_id, 'job-1', 1, 0.5, 2, 2)

        job = server.training_jobs['job-1']
        assert job['status'] == 'failed'
        assert job['error'] == 'disk full'
        assert [event for event, _ in emitted] == ['training_error']

    def test_unknown_job(self, client):
        """Test that an unknown job id returns 404."""
        assert client.get('/api/training/missing').status_code == 404
