from pathlib import Path
from pydantic import BaseModel
import os
from gallery_client import __version__
# Optionally load a config.env file so local runs can keep endpoints and
# secrets out of the shell environment.
try:
    from dotenv import load_dotenv
    cfg_override = os.getenv('GALLERY_CLIENT_CONFIG_FILE')
    candidates = []
    if cfg_override:
        candidates.append(Path(cfg_override))
    candidates.append(Path.cwd() / 'config.env')

    for p in candidates:
        try:
            if p and p.exists():
                load_dotenv(str(p))
                break
        except Exception:
            continue
except Exception:
    # If loading fails, fall back to plain env vars
    pass

"""Central configuration.

Env vars:
  GALLERY_CLIENT_DATA_DIR            - directory for writable client data (created)
  GALLERY_CLIENT_DB_URL              - explicit URL of the local session database
  GALLERY_STORE_URL                  - base URL of the remote document store
  GALLERY_FUNCTIONS_URL              - base URL of the callable functions (login)
  GALLERY_STORAGE_URL                - base URL used to resolve stored asset paths
  GALLERY_REQUEST_TIMEOUT            - HTTP timeout in seconds
  GALLERY_HEARTBEAT_SECONDS          - analytics session heartbeat period
  GALLERY_QUERY_BATCH_LIMIT          - ids per batched "in" query (max 10)
  GALLERY_SUBSCRIPTION_POLL_SECONDS  - poll period of HTTP backed subscriptions
  GALLERY_CLIENT_LOG_LEVEL           - DEBUG, INFO, WARNING, ERROR, CRITICAL
  GALLERY_CLIENT_VERSION             - override reported version
"""

_diagnostics: list[str] = []


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        _diagnostics.append(f"invalid_float env={name} value={value!r}")
        return default


env_data_dir = os.getenv('GALLERY_CLIENT_DATA_DIR')

_candidates = []
for c in [env_data_dir, str(Path.cwd() / 'data')]:
    if c and c not in _candidates:
        _candidates.append(c)

data_dir = None
for cand in _candidates:
    p = Path(cand)
    try:
        p.mkdir(parents=True, exist_ok=True)
        data_dir = p
        _diagnostics.append(f"selected_data_dir={p} (candidate)")
        break
    except Exception as e:  # pragma: no cover
        _diagnostics.append(f"candidate_failed path={p} err={e}")
        continue

if data_dir is None:  # pragma: no cover
    data_dir = Path.home() / '.gallery_client'
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        _diagnostics.append(f"fallback_home_dir={data_dir}")
    except Exception as e:
        _diagnostics.append(f"fatal_failed_create_fallback path={data_dir} err={e}")

database_url = os.getenv('GALLERY_CLIENT_DB_URL') or f'sqlite:///{data_dir / "client.db"}'

_batch_limit = int(_env_float('GALLERY_QUERY_BATCH_LIMIT', 10))
if not 1 <= _batch_limit <= 10:
    _diagnostics.append(f"batch_limit_clamped requested={_batch_limit}")
    _batch_limit = min(10, max(1, _batch_limit))


class Settings(BaseModel):
    app_name: str = 'Gallery Client'
    version: str = os.getenv('GALLERY_CLIENT_VERSION', __version__)
    data_dir: Path = data_dir
    database_url: str = database_url
    store_url: str | None = os.getenv('GALLERY_STORE_URL')
    functions_url: str | None = os.getenv('GALLERY_FUNCTIONS_URL')
    storage_url: str | None = os.getenv('GALLERY_STORAGE_URL')
    request_timeout: float = _env_float('GALLERY_REQUEST_TIMEOUT', 30.0)
    heartbeat_seconds: float = _env_float('GALLERY_HEARTBEAT_SECONDS', 60.0)
    query_batch_limit: int = _batch_limit
    subscription_poll_seconds: float = _env_float('GALLERY_SUBSCRIPTION_POLL_SECONDS', 5.0)
    # Logging level for the client (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_level: str = os.getenv('GALLERY_CLIENT_LOG_LEVEL', 'INFO')
    diagnostics: list[str] | None = _diagnostics

settings = Settings()
