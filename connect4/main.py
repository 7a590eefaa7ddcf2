"""
Entrypoint of the web service.

Run with `uvicorn connect4.main:app`, or directly with `python -m connect4.main`.
"""

import os

from connect4.api.app import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
