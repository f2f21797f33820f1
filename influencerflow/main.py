"""Short entrypoint so `python -m influencerflow.main` starts the API.

The FastAPI app itself lives in `influencerflow.src.app.main:app`.
"""

from influencerflow.src.app.main import app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
