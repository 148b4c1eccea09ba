import uvicorn

from expense_api.core.config import load_settings


def main() -> None:
    settings = load_settings()
    uvicorn.run(
        "expense_api.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
