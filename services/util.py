# services/util.py

import os

def get_data_path():
    path = get_env('CHATTAP_DATA_PATH')
    return path.strip() if path else 'data'

def get_env(env: str, default: str | None = None):
    return os.environ.get(env, default)
