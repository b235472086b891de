"""
In-memory stand-in for the greeting-receiver and greeting-api services.
Used to exercise the runner locally and in the Dagger pipeline; it does no
real processing.
"""
import os
import threading
import time
import uuid
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, Field


class GreetingIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    external_reference: str = Field(alias="externalReference", min_length=1)
    to: str = Field(min_length=1)
    sender: str = Field(alias="from", min_length=1)
    heading: str
    message: str = Field(min_length=1)
    created: datetime


class GreetingLog:
    """Greetings become log entries once their processing delay has passed."""

    def __init__(self, processing_delay_seconds=0.0, clock=time.monotonic):
        self.processing_delay_seconds = processing_delay_seconds
        self.clock = clock
        self._lock = threading.Lock()
        self._queued = []
        self._entries = []

    def accept(self, greeting: GreetingIn) -> str:
        message_id = str(uuid.uuid4())
        with self._lock:
            self._queued.append((self.clock() + self.processing_delay_seconds, message_id, greeting))
        return message_id

    def entries(self):
        with self._lock:
            now = self.clock()
            ready = [item for item in self._queued if item[0] <= now]
            self._queued = [item for item in self._queued if item[0] > now]
            for _, message_id, greeting in ready:
                entry_id = len(self._entries) + 1
                self._entries.append(
                    {
                        "id": entry_id,
                        "greetingId": entry_id,
                        "messageId": message_id,
                        "externalReference": greeting.external_reference,
                        "created": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                    }
                )
            return list(self._entries)


def create_app(processing_delay_seconds=None) -> FastAPI:
    if processing_delay_seconds is None:
        processing_delay_seconds = float(os.environ.get("FAKE_PIPELINE_PROCESSING_DELAY_SECONDS", "0"))

    app = FastAPI(title="Fake Greeting Pipeline", version="1.0.0")
    app.state.log = GreetingLog(processing_delay_seconds)

    @app.post("/greeting")
    async def receive_greeting(greeting: GreetingIn):
        """Accept a greeting and queue it for processing."""
        return {"messageId": app.state.log.accept(greeting)}

    @app.get("/log/last")
    async def last_log_entry():
        """Newest processed greeting, or 204 when nothing is processed yet."""
        entries = app.state.log.entries()
        if not entries:
            return Response(status_code=204)
        return entries[-1]

    @app.get("/log")
    async def log_entries(
        direction: str = "forward",
        offset: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=1000),
    ):
        """Page through processed greetings starting at ``offset``."""
        entries = app.state.log.entries()
        if direction == "forward":
            return [e for e in entries if e["id"] >= offset][:limit]
        if direction == "backward":
            return [e for e in reversed(entries) if offset == 0 or e["id"] <= offset][:limit]
        raise HTTPException(status_code=400, detail=f"Unknown direction {direction!r}")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for service monitoring."""
        return {"status": "healthy", "service": "fake-greeting-pipeline"}

    return app


app = create_app()


if __name__ == "__main__":
    # Run the app when called as a module
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8080")))
