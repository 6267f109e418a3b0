import logging
import os

from erpforge.api.main import create_app
from erpforge.core.settings import Settings

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=(os.getenv("ERPFORGE_LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
