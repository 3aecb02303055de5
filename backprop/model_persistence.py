"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite-based persistence for neural network snapshots.
Provides reliable, performant storage with ACID transaction guarantees.

Networks are stored as JSON snapshots (topology, weights, biases and cycle
counter) rather than pickled objects, so a stored row can always be
validated before a network is rebuilt from it.
"""

import sqlite3
import json
import os
import logging
from typing import Optional, List, Dict, Any, Generator
from contextlib import contextmanager

from .snapshot import NetworkSnapshot, network_from_snapshot

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = 'models'


class ModelDatabase:
    """
    Manages SQLite database for neural network model persistence.

    The database stores:
    - Network metadata (architecture, variant, training status, accuracy)
    - Network snapshots as JSON text
    """

    def __init__(self, db_path: str = 'models/networks.db'):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    network_kind TEXT NOT NULL,
                    network_data TEXT NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    accuracy REAL,
                    completed_cycles INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # Create index for common queries
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_trained
                ON networks(trained)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    def save_network_to_db(
        self,
        network,
        network_id: str,
        trained: bool = True,
        accuracy: Optional[float] = None
    ) -> bool:
        """
        Save a network to the database.

        Args:
            network: Network or NeuralNetwork to save
            network_id: Unique identifier for the network
            trained: Whether the network has been trained
            accuracy: Validation accuracy (0.0 to 1.0)

        Returns:
            bool: True if successful

        Raises:
            ValueError: If accuracy is out of valid range
        """
        # Validate inputs
        if accuracy is not None and not 0.0 <= accuracy <= 1.0:
            raise ValueError(
                f"Accuracy must be between 0.0 and 1.0, got {accuracy}"
            )

        snapshot = network.snapshot()
        snapshot.validate()

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT OR REPLACE INTO networks
                (network_id, architecture, network_kind, network_data,
                 trained, accuracy, completed_cycles, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?,
                        COALESCE((SELECT created_at FROM networks
                                  WHERE network_id = ?), CURRENT_TIMESTAMP),
                        CURRENT_TIMESTAMP)
            ''', (
                network_id,
                json.dumps(snapshot.topology),
                snapshot.kind,
                snapshot.to_json(),
                1 if trained else 0,
                accuracy,
                snapshot.completed_cycles,
                network_id
            ))

        logger.info(
            f"Saved {snapshot.kind} network '{network_id}' with architecture "
            f"{snapshot.topology}, trained={trained}, accuracy={accuracy}"
        )
        return True

    def load_network_from_db(self, network_id: str):
        """
        Load a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Network object or None if not found

        Raises:
            SnapshotError: If the stored snapshot is malformed
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

        if row is None:
            logger.warning(f"Network '{network_id}' not found")
            return None

        snapshot = NetworkSnapshot.from_json(row['network_data'])
        network = network_from_snapshot(snapshot)
        logger.info(f"Loaded network '{network_id}'")
        return network

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'network_id': row['network_id'],
            'architecture': json.loads(row['architecture']),
            'kind': row['network_kind'],
            'trained': bool(row['trained']),
            'accuracy': row['accuracy'],
            'completed_cycles': row['completed_cycles'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        List all networks with metadata.

        Returns:
            List of network metadata dictionaries
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id,
                    architecture,
                    network_kind,
                    trained,
                    accuracy,
                    completed_cycles,
                    created_at,
                    updated_at
                FROM networks
                ORDER BY created_at DESC
            ''')

            networks = []
            for row in cursor.fetchall():
                metadata = self._row_to_metadata(row)
                architecture = metadata['architecture']

                # Calculate weight and bias shapes from architecture
                metadata['weights_shape'] = [
                    [architecture[i+1], architecture[i]]
                    for i in range(len(architecture) - 1)
                ]
                metadata['biases_shape'] = [
                    [architecture[i+1]]
                    for i in range(len(architecture) - 1)
                ]
                networks.append(metadata)

            logger.debug(f"Listed {len(networks)} networks")
            return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Args:
            network_id: Unique identifier of the network

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )

            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted network '{network_id}'")
            else:
                logger.warning(
                    f"Could not delete network '{network_id}': not found"
                )
            return deleted

    def delete_old_networks_from_db(self, days: int = 2) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Args:
            days: Age threshold in days

        Returns:
            int: Number of networks deleted

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get network metadata without loading the full snapshot.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    network_id,
                    architecture,
                    network_kind,
                    trained,
                    accuracy,
                    completed_cycles,
                    created_at,
                    updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))

            row = cursor.fetchone()
            if row is None:
                logger.warning(
                    f"Metadata for network '{network_id}' not found"
                )
                return None

            return self._row_to_metadata(row)


# Database instances, one per model directory
_databases: Dict[str, ModelDatabase] = {}


def _get_db(model_dir: str = DEFAULT_MODEL_DIR) -> ModelDatabase:
    """
    Get or create the database instance for a model directory.

    Returns:
        ModelDatabase: The database stored under ``model_dir``
    """
    db = _databases.get(model_dir)
    if db is None:
        db = ModelDatabase(db_path=os.path.join(model_dir, 'networks.db'))
        _databases[model_dir] = db
    return db


def save_network(
    network,
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR,
    trained: bool = True,
    accuracy: Optional[float] = None
) -> bool:
    """
    Save a neural network to the SQLite database.

    Args:
        network: The network to save (either variant)
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        trained: Boolean indicating if the network has been trained
        accuracy: The accuracy of the trained network (0.0 to 1.0)

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = Network([784, 30, 10])
        >>> save_network(net, "my_network", trained=False)
        True
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False

    try:
        return _get_db(model_dir).save_network_to_db(
            network, network_id, trained, accuracy
        )

    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False


def load_network(network_id: str, model_dir: str = DEFAULT_MODEL_DIR):
    """
    Load a neural network from the SQLite database.

    Args:
        network_id: The unique identifier of the network to load
        model_dir: Directory where the database is stored

    Returns:
        The loaded network or None if not found

    Raises:
        SnapshotError: If the stored snapshot is malformed

    Example:
        >>> net = load_network("my_network")
        >>> if net:
        ...     print(f"Loaded network with {len(net.topology)} layers")
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return None

    try:
        return _get_db(model_dir).load_network_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(
            f"Database error loading network '{network_id}': {e}"
        )
        return None


def list_saved_networks(
    model_dir: str = DEFAULT_MODEL_DIR
) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Args:
        model_dir: Directory where the database is stored

    Returns:
        list: A list of metadata dictionaries for each saved network

    Example:
        >>> networks = list_saved_networks()
        >>> for net in networks:
        ...     print(f"{net['network_id']}: {net['architecture']}")
    """
    try:
        return _get_db(model_dir).list_networks_from_db()

    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: str = DEFAULT_MODEL_DIR) -> bool:
    """
    Delete a saved network from the database.

    Args:
        network_id: The unique identifier of the network to delete
        model_dir: Directory where the database is stored

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False

    try:
        return _get_db(model_dir).delete_network_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False


def delete_old_networks(days: int = 2, model_dir: str = DEFAULT_MODEL_DIR) -> int:
    """
    Delete saved networks older than ``days`` days.

    Args:
        days: Age threshold in days
        model_dir: Directory where the database is stored

    Returns:
        int: Number of networks deleted, or -1 on a database error

    Raises:
        ValueError: If days is negative
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")

    try:
        return _get_db(model_dir).delete_old_networks_from_db(days)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1


def get_network_metadata(
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR
) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a specific network without loading its snapshot.

    Args:
        network_id: The unique identifier of the network
        model_dir: Directory where the database is stored

    Returns:
        dict: Network metadata or None if not found

    Example:
        >>> metadata = get_network_metadata("my_network")
        >>> if metadata:
        ...     print(f"Accuracy: {metadata['accuracy']}")
    """
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return None

    try:
        return _get_db(model_dir).get_network_metadata_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(
            f"Database error getting metadata for '{network_id}': {e}"
        )
        return None
    except json.JSONDecodeError as e:
        logger.error(
            f"JSON decode error getting metadata for '{network_id}': {e}"
        )
        return None
