import uvicorn

from planpay.api.app import create_app
from planpay.config import load_config


def main():
    cfg = load_config()
    app = create_app()
    uvicorn.run(app, host=cfg.host, port=cfg.port)


if __name__ == "__main__":
    main()
