"""Account service entrypoint.

Run with:
  python -m account_service
"""

import os
import uvicorn


def main() -> None:
    host = os.getenv("ACCOUNT_SERVICE_HOST", "0.0.0.0")
    port = int(os.getenv("ACCOUNT_SERVICE_PORT", "8000"))
    reload = os.getenv("ACCOUNT_SERVICE_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    uvicorn.run("account_service.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
