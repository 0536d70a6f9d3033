"""ASGI entrypoint: ``uvicorn equipment_lifecycle.main:app``."""

import os

import uvicorn

from equipment_lifecycle import create_app

app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
