import os


def _int_env(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


class Config:
    """Base configuration"""

    # Local archive
    # Best practice is for this to live on another disk or server
    BACKUP_ROOT = os.environ.get('TSBACKUP_ROOT') or '/var/opt/tableau/backups'
    DAILY_ARCHIVE_DIR = os.environ.get('DAILY_ARCHIVE_DIR') or os.path.join(BACKUP_ROOT, 'Daily')
    MONTHLY_ARCHIVE_DIR = os.environ.get('MONTHLY_ARCHIVE_DIR') or os.path.join(BACKUP_ROOT, 'Monthly')

    # Remote replication (empty disables it)
    S3_DESTINATION = os.environ.get('S3_DESTINATION', 's3://my-s3-bucket/tableau-backups/')
    AWS_REGION = os.environ.get('AWS_REGION') or None

    # Retention (days)
    BACKUP_RETENTION_DAYS = _int_env('BACKUP_RETENTION_DAYS', 14)
    MONTHLY_RETENTION_DAYS = _int_env('MONTHLY_RETENTION_DAYS', 365)
    ZIPLOG_RETENTION_DAYS = _int_env('ZIPLOG_RETENTION_DAYS', 3)

    # Tableau Services Manager
    TSM_EXECUTABLE = os.environ.get('TSM_EXECUTABLE') or 'tsm'
    TSM_REQUEST_TIMEOUT = _int_env('TSM_REQUEST_TIMEOUT', None)
    LOG_ARCHIVE_KEY = 'basefilepath.log_archive'
    BACKUP_DIR_KEY = 'basefilepath.backuprestore'
    PRODUCER_RETRIES = _int_env('PRODUCER_RETRIES', 1)

    # Run identity
    HOSTNAME = os.environ.get('TSBACKUP_HOSTNAME') or None

    # Locking and logging
    LOCK_FILE = os.environ.get('TSBACKUP_LOCK_FILE') or os.path.join(BACKUP_ROOT, '.tsbackup.lock')
    LOG_DIR = os.environ.get('TSBACKUP_LOG_DIR') or os.path.join(BACKUP_ROOT, 'logs')
    DEBUG = False


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    BACKUP_ROOT = os.path.join(DATA_DIR, 'backups')
    DAILY_ARCHIVE_DIR = os.path.join(BACKUP_ROOT, 'Daily')
    MONTHLY_ARCHIVE_DIR = os.path.join(BACKUP_ROOT, 'Monthly')
    S3_DESTINATION = os.environ.get('S3_DESTINATION', '')
    LOCK_FILE = os.path.join(DATA_DIR, '.tsbackup.lock')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = os.environ.get('TSBACKUP_DEBUG', 'false').lower() == 'true'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}


def get_config(config_name=None):
    """
    Look up a configuration class by name.

    Args:
        config_name: Key into ``config``; defaults to the TSBACKUP_ENV
            environment variable, then 'production'

    Returns:
        Configuration class

    Raises:
        ValueError: If the name is unknown
    """
    if config_name is None:
        config_name = os.environ.get('TSBACKUP_ENV', 'production')

    if config_name not in config:
        raise ValueError(
            f"Unknown configuration: {config_name}. "
            f"Valid options: {list(config.keys())}"
        )

    return config[config_name]
