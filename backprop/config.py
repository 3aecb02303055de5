"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup for the service and scripts.
"""

import logging
import os
from dataclasses import dataclass


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Settings:
    """
    Runtime settings, read from the environment.

    Attributes:
        log_level: Name of the root log level (``LOG_LEVEL``)
        is_production: ``FLASK_ENV == 'production'``
        model_dir: Directory holding the network database (``MODEL_DIR``)
        data_dir: Directory holding MNIST files (``MNIST_DATA_DIR``)
        port: HTTP port (``PORT``)
        cleanup_enabled: Start the periodic cleanup task (``CLEANUP_ENABLED``)
        cleanup_max_age_days: Age at which saved networks are deleted
        default_num_workers: Worker threads per training round
        default_samples_per_worker: Examples per worker per round
    """
    log_level: str = 'INFO'
    is_production: bool = False
    model_dir: str = 'models'
    data_dir: str = 'data'
    port: int = 8000
    cleanup_enabled: bool = True
    cleanup_max_age_days: int = 2
    default_num_workers: int = 4
    default_samples_per_worker: int = 10

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            is_production=os.getenv('FLASK_ENV') == 'production',
            model_dir=os.getenv('MODEL_DIR', 'models'),
            data_dir=os.getenv('MNIST_DATA_DIR', 'data'),
            port=int(os.getenv('PORT', 8000)),
            cleanup_enabled=_env_flag('CLEANUP_ENABLED', True),
            cleanup_max_age_days=int(os.getenv('CLEANUP_MAX_AGE_DAYS', 2)),
            default_num_workers=int(os.getenv('DEFAULT_NUM_WORKERS', 4)),
            default_samples_per_worker=int(
                os.getenv('DEFAULT_SAMPLES_PER_WORKER', 10)
            ),
        )


def configure_logging(settings: Settings) -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level = getattr(logging, settings.log_level, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if settings.is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('backprop').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)
