import uvicorn

from maps_auth.core.config import get_settings
from maps_auth.main import get_app


def main() -> None:
    settings = get_settings()
    uvicorn.run(get_app, factory=True, host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
