import json
import logging
import logging.config
import os
from datetime import datetime

DEFAULT_LOG_CONFIG = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'logging_config.json')


def setup_logging(script_name, log_config=None, log_folder=None):
    """
    Configure logging using a JSON configuration file with a today_date log file name.

    Parameters
    ----------
    script_name : str
        Name used in the log file name (no file extension).
    log_config : str, optional
        Path to a JSON `logging.config.dictConfig` file. Falls back to the
        LOG_CONFIG environment variable, then to the bundled logging_config.json.
    log_folder : str, optional
        Folder for `<today_date>.<script_name>.log`. Falls back to the LOG_FILE
        environment variable. Without either, the file handler is dropped and
        only the console handler is kept.

    Returns
    -------
    logging.Logger
        The root logger.
    """
    if log_config is None:
        log_config = os.getenv('LOG_CONFIG') or DEFAULT_LOG_CONFIG
    if log_folder is not None:
        today_date = datetime.now().strftime("%Y-%m-%d")
        os.makedirs(log_folder, exist_ok=True)
        log_file = os.path.join(log_folder, f'{today_date}.{script_name}.log')
    else:
        log_file = os.getenv('LOG_FILE')

    with open(log_config, 'r') as config_file:
        config = json.load(config_file)

    if 'file' in config.get('handlers', {}):
        if log_file:
            config['handlers']['file']['filename'] = log_file
        else:
            del config['handlers']['file']
            for logger_config in [config.get('root', {}), *config.get('loggers', {}).values()]:
                if 'file' in logger_config.get('handlers', []):
                    logger_config['handlers'] = [h for h in logger_config['handlers'] if h != 'file']
    logging.config.dictConfig(config)
    return logging.getLogger()
