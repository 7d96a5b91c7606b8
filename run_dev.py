import sys
import os

# Ensure src is in python path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from src.config.settings import settings
from src.eventlog.bootstrap import run_server


def main():
    print(f"Starting event log API on {settings.API_HOST}:{settings.API_PORT} "
          f"(backend={settings.EVENT_STORE_BACKEND})")
    run_server(settings)


if __name__ == "__main__":
    main()
