import uvicorn

from rewriting_proxy.vars import ProxySettings


def run() -> None:
    settings = ProxySettings.from_env()
    uvicorn.run(
        "rewriting_proxy.server:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    run()
