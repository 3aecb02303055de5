"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for neural network training.

This module provides endpoints for:
- Creating and managing parallel networks
- Training networks in cycles with real-time progress updates via WebSockets
- Asking networks for output and showcasing MNIST digit predictions
- Persisting network snapshots to/from SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- SQLite for network persistence
"""

import os
import sys
import uuid
import base64
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from backprop import mnist_loader
from backprop.config import Settings, configure_logging
from backprop.exceptions import InvalidTopology, NetworkError, ShapeMismatch
from backprop.network import Network
from backprop.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

settings = Settings.from_env()
configure_logging(settings)
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not settings.is_production,
    engineio_logger=not settings.is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

# MNIST data sets - loaded once at startup for efficiency
training_data: Optional[mnist_loader.Dataset] = None
test_data: Optional[mnist_loader.Dataset] = None


# ============================================================================
# DATA LOADING
# ============================================================================

def load_mnist_data() -> None:
    """
    Load MNIST data sets into global variables.

    Called once at startup to avoid reloading data for each training run.
    Missing files leave the data unset; training endpoints then answer 503.
    """
    global training_data, test_data

    logger.info(f"Loading MNIST data from {settings.data_dir}...")
    try:
        training_data, test_data = mnist_loader.load_data_wrapper(
            settings.data_dir
        )
    except FileNotFoundError as e:
        logger.warning(f"MNIST data not available: {e}")
        training_data, test_data = None, None


def reload_saved_networks() -> None:
    """
    Reload all saved parallel networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted. This keeps active_networks in sync with
    the database.
    """
    saved_networks = list_saved_networks(settings.model_dir)

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        if net_info['kind'] != Network.KIND:
            logger.debug(f"Skipping {net_info['kind']} network {network_id}")
            continue
        try:
            net = load_network(network_id, settings.model_dir)
        except NetworkError as e:
            logger.error(f"Stored snapshot for network {network_id} is invalid: {e}")
            continue

        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue

        active_networks[network_id] = {
            'network': net,
            'architecture': net_info['architecture'],
            'trained': net_info['trained'],
            'accuracy': net_info['accuracy']
        }
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


load_mnist_data()
reload_saved_networks()

# Training jobs can't continue after a restart, so start fresh
training_jobs.clear()


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Background task that runs immediately on startup, then every 24 hours to:
    - Delete networks older than the configured age from the database
    - Sync in-memory networks with the database
    - Remove completed/failed training jobs from memory
    """
    while True:
        logger.info("Starting automatic cleanup of old networks...")
        try:
            deleted_count = delete_old_networks(
                days=settings.cleanup_max_age_days,
                model_dir=settings.model_dir
            )
        except ValueError as e:
            logger.error(f"Cleanup misconfigured: {e}")
            return

        if deleted_count > 0:
            # Remove any networks from memory that no longer exist in database
            saved_ids = {
                net['network_id']
                for net in list_saved_networks(settings.model_dir)
            }
            for nid in [nid for nid in active_networks if nid not in saved_ids]:
                del active_networks[nid]
                logger.info(f"Removed network {nid} from memory (deleted from database)")
        elif deleted_count < 0:
            logger.error("Cleanup failed; retrying in an hour")
            gevent.sleep(3600)
            continue

        cleanup_finished_training_jobs()

        logger.info("Next cleanup scheduled in 24 hours")
        gevent.sleep(86400)


def cleanup_finished_training_jobs() -> None:
    """
    Remove completed or failed training jobs from memory.

    Only removes jobs that are no longer active (completed or failed).
    """
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    Uses gevent.spawn() directly so it works both when running directly and
    under gunicorn. Calling it more than once has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started or not settings.cleanup_enabled:
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


start_cleanup_task()


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training,
        'data_loaded': training_data is not None
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new parallel network.

    Request body (optional):
        {'layer_sizes': [784, 30, 10], 'seed': 42}

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request.get_json(silent=True) or {}
    layer_sizes = data.get('layer_sizes', [784, 30, 10])
    seed = data.get('seed')

    if not isinstance(layer_sizes, list):
        return jsonify({'error': 'layer_sizes must be a list'}), 400
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int) or seed < 0):
        return jsonify({'error': 'seed must be a non-negative integer'}), 400

    try:
        net = Network(layer_sizes, seed=seed)
    except InvalidTopology as e:
        logger.warning(f"Invalid architecture requested: {layer_sizes}")
        return jsonify({'error': f'Invalid architecture. {e}'}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = {
        'network': net,
        'architecture': net.topology,
        'trained': False,
        'accuracy': None
    }

    logger.info(f"Created network {network_id} with architecture {net.topology}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.topology,
        'status': 'created'
    }), 201


def _positive_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f'{key} must be a positive integer')
    return value


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body (all optional):
        {
            'cycles': 5,
            'learning_rate': 1.0,
            'num_workers': 4,
            'samples_per_worker': 10
        }

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if training_data is None or test_data is None:
        return jsonify({'error': 'Training data not available'}), 503

    data = request.get_json(silent=True) or {}
    try:
        cycles = _positive_int(data, 'cycles', 5)
        num_workers = _positive_int(data, 'num_workers', settings.default_num_workers)
        samples_per_worker = _positive_int(
            data, 'samples_per_worker', settings.default_samples_per_worker
        )
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    learning_rate = data.get('learning_rate', 1.0)
    if isinstance(learning_rate, bool) or not isinstance(learning_rate, (int, float)) \
            or learning_rate <= 0:
        return jsonify({'error': 'learning_rate must be a positive number'}), 400

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'cycles': cycles
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"cycles={cycles}, lr={learning_rate}, workers={num_workers}, "
        f"samples_per_worker={samples_per_worker}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_network_task,
        network_id, job_id, cycles, float(learning_rate),
        num_workers, samples_per_worker
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    cycles: int,
    learning_rate: float,
    num_workers: int,
    samples_per_worker: int
) -> None:
    """
    Background task that trains a network for a number of cycles.

    Validates and saves the network after every cycle and sends progress
    updates via WebSocket.
    """
    job = training_jobs[job_id]

    # Lets HTTP requests and socket pings through between training rounds
    def yield_to_other_tasks(progress_info: Dict[str, Any]) -> None:
        gevent.sleep(0)

    try:
        network_info = active_networks.get(network_id)
        if network_info is None:
            raise KeyError(f"Network {network_id} no longer exists")
        net = network_info['network']

        logger.info(f"Starting training for job {job_id}")
        job['status'] = 'training'
        accuracy = None

        for cycle in range(1, cycles + 1):
            net.train(
                training_data.inputs,
                training_data.labels,
                learning_rate,
                num_workers,
                samples_per_worker,
                callback=yield_to_other_tasks
            )
            summary = net.validate(test_data.inputs, test_data.labels, num_workers)
            accuracy = summary.accuracy
            progress = (cycle / cycles) * 100

            network_info = active_networks.get(network_id)
            if network_info is None:
                raise KeyError(f"Network {network_id} was deleted during training")

            job['progress'] = progress
            network_info['trained'] = True
            network_info['accuracy'] = accuracy
            save_network(net, network_id, model_dir=settings.model_dir,
                         trained=True, accuracy=accuracy)

            socketio.emit('training_update', {
                'job_id': job_id,
                'network_id': network_id,
                'cycle': cycle,
                'total_cycles': cycles,
                'completed_cycles': net.completed_cycles,
                'accuracy': accuracy,
                'mean_error': summary.mean_error,
                'correct': summary.num_correct,
                'total': summary.total_examples,
                'progress': progress
            })
            # Let gevent send the message immediately
            gevent.sleep(0)

        job['status'] = 'completed'
        job['accuracy'] = accuracy
        job['progress'] = 100

        logger.info(f"Training completed for job {job_id}: accuracy {accuracy:.2%}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'accuracy': accuracy,
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        job['status'] = 'failed'
        job['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'architecture': info['architecture'],
            'trained': info['trained'],
            'accuracy': info['accuracy'],
            'completed_cycles': info['network'].completed_cycles,
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    # Get saved networks, excluding duplicates already in memory
    saved_only = []
    for net in list_saved_networks(settings.model_dir):
        if net['network_id'] not in active_networks:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    deleted_from_memory = active_networks.pop(network_id, None) is not None
    deleted_from_disk = delete_network(network_id, settings.model_dir)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete all networks from both memory and disk."""
    saved_ids = [net['network_id'] for net in list_saved_networks(settings.model_dir)]
    all_network_ids = set(active_networks) | set(saved_ids)

    deleted_from_memory_count = 0
    deleted_from_disk_count = 0
    for network_id in all_network_ids:
        if active_networks.pop(network_id, None) is not None:
            deleted_from_memory_count += 1
        if delete_network(network_id, settings.model_dir):
            deleted_from_disk_count += 1

    logger.info(
        f"Deleted all networks: {len(all_network_ids)} total, "
        f"{deleted_from_memory_count} from memory, {deleted_from_disk_count} from disk"
    )

    return jsonify({
        'deleted_count': len(all_network_ids),
        'deleted_from_memory': deleted_from_memory_count,
        'deleted_from_disk': deleted_from_disk_count,
        'message': f'Successfully deleted {len(all_network_ids)} network(s)'
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 2}  # defaults to 2
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', settings.cleanup_max_age_days)

    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = delete_old_networks(days=int(days), model_dir=settings.model_dir)
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200


@app.route('/api/networks/<network_id>/ask', methods=['POST'])
def ask_network(network_id: str):
    """
    Ask a network to classify an input vector.

    Request body:
        {'input': [0.0, 1.0, ...]}
    """
    if network_id not in active_networks:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    inputs = data.get('input')
    if not isinstance(inputs, list):
        return jsonify({'error': 'input must be a list of numbers'}), 400

    net = active_networks[network_id]['network']
    try:
        output = net.ask(inputs)
    except ShapeMismatch as e:
        return jsonify({'error': str(e)}), 400
    except (TypeError, ValueError):
        return jsonify({'error': 'input must be a list of numbers'}), 400

    return jsonify({
        'network_id': network_id,
        'output': array_to_float_list(output),
        'predicted': int(np.argmax(output))
    }), 200


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in array.flatten()]


def create_digit_image(image_data: np.ndarray, predicted: int, actual: int) -> str:
    """
    Create a base64-encoded PNG image of a digit.

    Args:
        image_data: 784-element array representing the 28x28 digit image
        predicted: The digit the network predicted (0-9)
        actual: The correct digit (0-9)

    Returns:
        Base64-encoded PNG image string
    """
    plt.figure(figsize=(3, 3))
    plt.imshow(np.asarray(image_data).reshape(28, 28), cmap='gray')
    plt.title(f"Predicted: {predicted} | Actual: {actual}")
    plt.axis('off')

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


def _find_example(network_id: str, want_correct: bool, max_attempts: int):
    """Search random test digits for a (mis)classified example."""
    if network_id not in active_networks:
        logger.warning(f"Example requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    if test_data is None:
        logger.error("Test data not loaded")
        return jsonify({'error': 'Test data not available'}), 503

    net = active_networks[network_id]['network']
    if net.topology[0] != test_data.inputs.shape[1]:
        return jsonify({'error': 'Network input size does not match test data'}), 400

    for attempt in range(max_attempts):
        index = np.random.randint(0, len(test_data))
        x = test_data.inputs[index]
        output = net.ask(x)
        predicted_digit = int(np.argmax(output))
        actual_digit = int(np.argmax(test_data.labels[index]))

        if (predicted_digit == actual_digit) == want_correct:
            logger.debug(f"Found example on attempt {attempt + 1}")

            return jsonify({
                'network_id': network_id,
                'example_index': index,
                'predicted_digit': predicted_digit,
                'actual_digit': actual_digit,
                'image_data': create_digit_image(x, predicted_digit, actual_digit),
                'network_output': array_to_float_list(output)
            }), 200

    kind = 'successful' if want_correct else 'unsuccessful'
    logger.warning(f"No {kind} example found after {max_attempts} attempts")
    return jsonify({
        'error': f'No {kind} example found after {max_attempts} attempts'
    }), 404


@app.route('/api/networks/<network_id>/successful_example', methods=['GET'])
def get_successful_example(network_id: str):
    """Return a random test digit the network classified correctly."""
    return _find_example(network_id, want_correct=True, max_attempts=100)


@app.route('/api/networks/<network_id>/unsuccessful_example', methods=['GET'])
def get_unsuccessful_example(network_id: str):
    """Return a random test digit the network classified incorrectly."""
    return _find_example(network_id, want_correct=False, max_attempts=200)


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    is_cloud = bool(os.environ.get('RAILWAY_STATIC_URL') or os.environ.get('PORT'))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {settings.port}")
    else:
        logger.info(f"Starting server at http://localhost:{settings.port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=settings.port,
            debug=not is_cloud,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {settings.port} is already in use.")
            sys.exit(1)
        raise
