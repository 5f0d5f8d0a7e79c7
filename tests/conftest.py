import os
import sys
import warnings
from pathlib import Path

# Ignore warnings from app.shared
warnings.filterwarnings("ignore", category=DeprecationWarning, module="app.shared.*")

# Set test environment variables before app config is first read
os.environ.update(
    {
        "DEMO_MODE": "true",
        "AUTH_JWT_SECRET": "test-auth-secret",
        "AUTH_JWT_ALGORITHM": "HS256",
        "BROADCAST_TOKEN_SECRET": "test-broadcast-secret",
        "MONGO_DB_NAME": "broadcast_video_test",
    }
)

# Ensure the project root is on sys.path so `app` and `tests` packages resolve
PROJECT_ROOT = Path(__file__).resolve().parents[1]
root_str = str(PROJECT_ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

# Import fixtures so they are available to all tests
from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403
from tests.fixtures.redis_fixtures import *  # noqa: E402, F403
from tests.fixtures.service_fixtures import *  # noqa: E402, F403
